"""
main.py

Entry point for the Precast QC piece-inspection API.

Wires the in-memory infrastructure into the FastAPI app and starts uvicorn.

Usage
-----
    # Option 1 — run directly
    python main.py

    # Option 2 — run via uvicorn CLI (recommended for development)
    uvicorn main:app --reload --port 8000

Host, port and log level come from config.Settings (QC_HOST, QC_PORT,
QC_LOG_LEVEL, ...).

Once running, open your browser at:
    http://localhost:8000/docs      ← Swagger UI
    http://localhost:8000/redoc     ← ReDoc
    http://localhost:8000/health    ← liveness check

Quick-start walkthrough (demo data is seeded on startup)
--------------------------------------------------------
1.  GET   /api/v1/quality-control/inspection/pieces?workspace_id=WS-1&form_id=FORM-A&type=PRE_POUR
2.  POST  /api/v1/quality-control/inspection/arrangement
          {"workspace_id": "WS-1", "form_id": "FORM-A", "type": "PRE_POUR",
           "arrangement": ["PC-B201", "PC-C101", "PC-W301", "PC-S401"]}
3.  POST  /api/v1/quality-control/inspection/points
          {"piece_id": "PC-B201", "page_id": "PC-B201-pg1", "x": 25, "y": 50, "type": "PRE_POUR"}
4.  POST  /api/v1/quality-control/inspection/complete
          {"piece_id": "PC-B201", "type": "PRE_POUR", "status": "APPROVED"}
5.  GET   /api/v1/quality-control/inspection/pieces/PC-B201/eligibility
"""

import uvicorn

from api import app, get_uow
from config import settings
from infrastructure import InMemoryUnitOfWork


# ---------------------------------------------------------------------------
# Wire the concrete Unit of Work into the FastAPI dependency system.
# To swap databases, replace InMemoryUnitOfWork with your SQL implementation.
# ---------------------------------------------------------------------------

app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
