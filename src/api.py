"""
api.py

REST API layer for the Precast Concrete QC piece-inspection workflow.

Framework : FastAPI
Auth      : none.  Every write is stamped with SYSTEM_USER_ID; a real
            deployment resolves the acting technician from its session layer
            and passes it to the use case command instead.

Structure
---------
  Routers (all prefixed under /api/v1/quality-control/inspection)
  ├── /pieces                        — pieces scheduled for a workspace/form/type
  │   └── /{piece_id}                — one piece
  │       ├── /eligibility           — pour / yard / shipping eligibility
  │       ├── /history               — completed inspection records
  │       └── /recommendations       — inspection checklist suggestions
  ├── /arrangement                   — saved piece order (GET / POST)
  ├── /points                        — inspection points (GET / POST)
  │   └── /{point_id}                — update / delete a point
  └── /complete                      — approve or reject an inspection

Error handling
--------------
  NotFoundError    → 404
  ConflictError    → 409
  ApplicationError → 422
  ValueError       → 422
  Unhandled        → 500 (FastAPI default)

Response envelope
-----------------
  Success  : { "data": <payload> }
  Error    : { "detail": "<message>" }

Running
-------
  uvicorn api:app --reload      (from src/)
"""

from __future__ import annotations

import dataclasses
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Path, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_mcp import FastApiMCP
from pydantic import BaseModel, Field, field_validator, model_validator

from application import (
    # Exceptions
    ApplicationError,
    ConflictError,
    NotFoundError,
    # Unit of work
    AbstractUnitOfWork,
    # Use-case commands
    CompleteInspectionCommand,
    CreateInspectionPointCommand,
    SaveArrangementCommand,
    UpdateInspectionPointCommand,
    # Use-case classes
    CompleteInspectionUseCase,
    CreateInspectionPointUseCase,
    DeleteInspectionPointUseCase,
    GetArrangementUseCase,
    GetInspectionRecommendationsUseCase,
    GetPieceEligibilityUseCase,
    GetPieceUseCase,
    ListInspectionHistoryUseCase,
    ListInspectionPointsUseCase,
    ListPiecesForInspectionUseCase,
    SaveArrangementUseCase,
    UpdateInspectionPointUseCase,
)
from config import settings
from infrastructure import InMemoryUnitOfWork, seed_demo_data
from log import configure_logging, get_logger
from model import InspectionStatus, InspectionType, PointStatus
from service import RecommendationProvider, StaticRecommendationProvider

configure_logging(settings.log_level)
LOGGER = get_logger(__name__)

# System user id stamped on writes while no auth is wired in
SYSTEM_USER_ID = "00000000-0000-0000-0000-000000000001"


# ---------------------------------------------------------------------------
# App bootstrap
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )
    if settings.seed_demo_data:
        seed_demo_data(InMemoryUnitOfWork())
    yield
    LOGGER.info("Shutting down application")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "REST API behind the QC piece-inspection screen: scheduled pieces, "
        "technician piece arrangement, inspection points marked on drawings, "
        "and pre-pour / post-pour approval with downstream eligibility."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Global exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(NotFoundError)
async def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_uow() -> AbstractUnitOfWork:
    """Returns the in-memory Unit of Work (no database required)."""
    return InMemoryUnitOfWork()


def get_recommendation_provider() -> RecommendationProvider:
    """Override to plug in a model-backed provider."""
    return StaticRecommendationProvider()


# ---------------------------------------------------------------------------
# Envelope helper
# ---------------------------------------------------------------------------

def _ok(data: Any) -> Dict:
    """Wrap a DTO or list of DTOs in the standard success envelope."""
    if dataclasses.is_dataclass(data):
        return {"data": dataclasses.asdict(data)}
    if isinstance(data, list):
        return {
            "data": [
                dataclasses.asdict(item) if dataclasses.is_dataclass(item) else item
                for item in data
            ]
        }
    return {"data": data}


# ===========================================================================
# REQUEST BODY SCHEMAS  (Pydantic v2)
# ===========================================================================

class SaveArrangementRequest(BaseModel):
    workspace_id: str = Field(..., min_length=1)
    form_id: str = Field(..., min_length=1)
    type: InspectionType
    arrangement: List[str] = Field(
        ..., description="Every piece id in its desired display order."
    )


class CreatePointRequest(BaseModel):
    piece_id: str = Field(..., min_length=1)
    page_id: str = Field(..., min_length=1)
    x: float = Field(..., ge=0.0, le=100.0, description="Percent of drawing width")
    y: float = Field(..., ge=0.0, le=100.0, description="Percent of drawing height")
    type: InspectionType
    notes: str = Field(default="", max_length=2000)


class UpdatePointRequest(BaseModel):
    status: Optional[PointStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class CompleteInspectionRequest(BaseModel):
    """
    Accepts either `status` (APPROVED / REJECTED) or the boolean `approved`.
    """
    piece_id: str = Field(..., min_length=1)
    type: InspectionType
    status: Optional[InspectionStatus] = None
    approved: Optional[bool] = None
    notes: str = Field(default="", max_length=2000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[InspectionStatus]) -> Optional[InspectionStatus]:
        if v == InspectionStatus.PENDING:
            raise ValueError("status must be one of: ['APPROVED', 'REJECTED']")
        return v

    @model_validator(mode="after")
    def resolve_decision(self) -> "CompleteInspectionRequest":
        if self.status is None:
            if self.approved is None:
                raise ValueError("either status or approved is required")
            self.status = InspectionStatus.APPROVED if self.approved else InspectionStatus.REJECTED
        return self


# ===========================================================================
# ROUTERS
# ===========================================================================

api_v1 = APIRouter(prefix=settings.api_v1_prefix)

inspection_router = APIRouter(prefix="/quality-control/inspection")


# ---------------------------------------------------------------------------
# Pieces
# ---------------------------------------------------------------------------

@inspection_router.get(
    "/pieces",
    tags=["Pieces"],
    summary="List pieces scheduled for an inspection",
)
def list_pieces(
    workspace_id: str = Query(..., min_length=1),
    form_id: str = Query(..., min_length=1),
    inspection_type: InspectionType = Query(..., alias="type"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Pieces on the workspace/form that are due for this inspection type, in
    production order, each with its drawing pages, the inspection points of
    this type and its current status for this type.  An empty list means
    nothing is scheduled; an unknown workspace or form is a 404.
    """
    result = ListPiecesForInspectionUseCase().execute(
        workspace_id, form_id, inspection_type, uow
    )
    return _ok(result)


@inspection_router.get("/pieces/{piece_id}", tags=["Pieces"], summary="Get a piece")
def get_piece(
    piece_id: str = Path(...),
    inspection_type: Optional[InspectionType] = Query(default=None, alias="type"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetPieceUseCase().execute(piece_id, uow, inspection_type)
    return _ok(result)


@inspection_router.get(
    "/pieces/{piece_id}/eligibility",
    tags=["Pieces"],
    summary="Pour / yard / shipping eligibility derived from QC",
)
def get_piece_eligibility(
    piece_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = GetPieceEligibilityUseCase().execute(piece_id, uow)
    return _ok(result)


@inspection_router.get(
    "/pieces/{piece_id}/history",
    tags=["Completion"],
    summary="Completed inspections of a piece, newest first",
)
def get_inspection_history(
    piece_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = ListInspectionHistoryUseCase().execute(piece_id, uow)
    return _ok(result)


@inspection_router.get(
    "/pieces/{piece_id}/recommendations",
    tags=["Pieces"],
    summary="Suggested checks for an inspection",
)
def get_recommendations(
    piece_id: str = Path(...),
    inspection_type: InspectionType = Query(..., alias="type"),
    uow: AbstractUnitOfWork = Depends(get_uow),
    provider: RecommendationProvider = Depends(get_recommendation_provider),
):
    result = GetInspectionRecommendationsUseCase().execute(
        piece_id, inspection_type, provider, uow
    )
    return _ok(result)


# ---------------------------------------------------------------------------
# Arrangement
# ---------------------------------------------------------------------------

@inspection_router.get(
    "/arrangement",
    tags=["Arrangement"],
    summary="Get the saved piece arrangement",
)
def get_arrangement(
    workspace_id: str = Query(..., min_length=1),
    form_id: str = Query(..., min_length=1),
    inspection_type: InspectionType = Query(..., alias="type"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """`arrangement` is an empty list when nothing has been saved yet."""
    result = GetArrangementUseCase().execute(workspace_id, form_id, inspection_type, uow)
    return _ok(result)


@inspection_router.post(
    "/arrangement",
    tags=["Arrangement"],
    summary="Save the piece arrangement (replaces any previous one)",
)
def save_arrangement(
    body: SaveArrangementRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = SaveArrangementCommand(
        workspace_id=body.workspace_id,
        form_id=body.form_id,
        inspection_type=body.type,
        piece_ids=body.arrangement,
        acting_user_id=SYSTEM_USER_ID,
    )
    result = SaveArrangementUseCase().execute(cmd, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# Inspection points
# ---------------------------------------------------------------------------

@inspection_router.get(
    "/points",
    tags=["Inspection Points"],
    summary="List the inspection points of one drawing page",
)
def list_points(
    piece_id: str = Query(..., min_length=1),
    page_id: str = Query(..., min_length=1),
    inspection_type: Optional[InspectionType] = Query(default=None, alias="type"),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    result = ListInspectionPointsUseCase().execute(piece_id, page_id, uow, inspection_type)
    return _ok(result)


@inspection_router.post(
    "/points",
    status_code=status.HTTP_201_CREATED,
    tags=["Inspection Points"],
    summary="Mark an inspection point on a drawing page",
)
def create_point(
    body: CreatePointRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = CreateInspectionPointCommand(
        piece_id=body.piece_id,
        page_id=body.page_id,
        inspection_type=body.type,
        x=body.x,
        y=body.y,
        notes=body.notes,
        acting_user_id=SYSTEM_USER_ID,
    )
    result = CreateInspectionPointUseCase().execute(cmd, uow)
    return _ok(result)


@inspection_router.put(
    "/points/{point_id}",
    tags=["Inspection Points"],
    summary="Update the status or notes of an inspection point",
)
def update_point(
    body: UpdatePointRequest,
    point_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    cmd = UpdateInspectionPointCommand(point_id=point_id, status=body.status, notes=body.notes)
    result = UpdateInspectionPointUseCase().execute(cmd, uow)
    return _ok(result)


@inspection_router.delete(
    "/points/{point_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Inspection Points"],
    summary="Delete an inspection point",
)
def delete_point(
    point_id: str = Path(...),
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    DeleteInspectionPointUseCase().execute(point_id, uow)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------

@inspection_router.post(
    "/complete",
    tags=["Completion"],
    summary="Approve or reject a piece's inspection",
)
def complete_inspection(
    body: CompleteInspectionRequest,
    uow: AbstractUnitOfWork = Depends(get_uow),
):
    """
    Terminal for the (piece, type) pair: a second decision is a 409.
    Approving PRE_POUR makes the piece READY_FOR_POUR; approving POST_POUR
    makes it READY_FOR_YARD (and so eligible for yard and shipping).
    Returns the updated piece.
    """
    cmd = CompleteInspectionCommand(
        piece_id=body.piece_id,
        inspection_type=body.type,
        decision=body.status,
        notes=body.notes,
        acting_user_id=SYSTEM_USER_ID,
    )
    result = CompleteInspectionUseCase().execute(cmd, uow)
    return _ok(result)


# ---------------------------------------------------------------------------
# Wire everything together
# ---------------------------------------------------------------------------

api_v1.include_router(inspection_router)
app.include_router(api_v1)


@app.get("/health", tags=["Health"], summary="Liveness check")
def health():
    return {"status": "ok", "version": settings.app_version}


# ---------------------------------------------------------------------------
# MCP server: every API route is exposed as an MCP tool
# Accessible at: http://localhost:8000/mcp
# ---------------------------------------------------------------------------

mcp = FastApiMCP(app)
mcp.mount()


# ---------------------------------------------------------------------------
# OpenAPI tag metadata
# ---------------------------------------------------------------------------

app.openapi_tags = [
    {
        "name": "Pieces",
        "description": (
            "Pieces scheduled on a workspace/form for pre-pour or post-pour "
            "inspection, with their drawing pages and downstream eligibility."
        ),
    },
    {
        "name": "Arrangement",
        "description": (
            "The technician-chosen inspection order of pieces.  One arrangement "
            "per workspace/form/type; each save replaces the previous one."
        ),
    },
    {
        "name": "Inspection Points",
        "description": (
            "Points marked on drawing pages, stored as percentages of the drawing "
            "so they stay in place at any viewport size."
        ),
    },
    {
        "name": "Completion",
        "description": "Approve / reject decisions and their history.",
    },
    {
        "name": "Health",
        "description": "Liveness check.",
    },
]
