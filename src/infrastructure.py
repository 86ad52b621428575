"""
infrastructure.py

In-memory repositories, Unit of Work and demo data.

Workspaces, forms, pieces, arrangements, points and inspection records live
in plain dicts.  Tests build their own InMemoryDatabase; the app uses the
module singleton.  A database-backed store implements the Abstract*
interfaces from application.py and is wired in through get_uow():

    app.dependency_overrides[get_uow] = lambda: SqlAlchemyUnitOfWork(session)

Nothing in service.py, application.py, or api.py needs to change.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from application import (
    AbstractArrangementRepository,
    AbstractFormRepository,
    AbstractInspectionPointRepository,
    AbstractInspectionRecordRepository,
    AbstractPieceRepository,
    AbstractUnitOfWork,
    AbstractWorkspaceRepository,
)
from log import get_logger
from model import (
    Arrangement,
    Dimensions,
    DrawingPage,
    Form,
    Piece,
    PieceStatus,
    Workspace,
)

LOGGER = get_logger(__name__)


# ---------------------------------------------------------------------------
# Generic in-memory store
# ---------------------------------------------------------------------------

class _Store(dict):
    """A plain dict with typed get/save/delete helpers."""

    def fetch(self, key):
        return self.get(key)

    def put(self, obj, key=None) -> None:
        # key overrides obj.id, e.g. the (workspace, form, type) tuple of an arrangement
        self[obj.id if key is None else key] = obj

    def remove(self, key) -> None:
        self.pop(key, None)

    def all(self) -> list:
        return list(self.values())


# ---------------------------------------------------------------------------
# Shared in-memory database (module-level singleton)
# Lives as long as the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

class InMemoryDatabase:
    def __init__(self):
        self.workspaces:   _Store = _Store()
        self.forms:        _Store = _Store()
        self.pieces:       _Store = _Store()
        self.arrangements: _Store = _Store()
        self.points:       _Store = _Store()
        self.inspections:  _Store = _Store()


# Module-level singleton shared by all requests
_db = InMemoryDatabase()


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class InMemoryWorkspaceRepository(AbstractWorkspaceRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, workspace_id):      return self._s.fetch(workspace_id)
    def save(self, workspace):        self._s.put(workspace)


class InMemoryFormRepository(AbstractFormRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, form_id):           return self._s.fetch(form_id)
    def list_for_workspace(self, workspace_id):
        return [f for f in self._s.all() if f.workspace_id == workspace_id]
    def save(self, form):             self._s.put(form)


class InMemoryPieceRepository(AbstractPieceRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, piece_id):          return self._s.fetch(piece_id)
    def list_for_form(self, workspace_id, form_id):
        return [
            p for p in self._s.all()
            if p.workspace_id == workspace_id and p.form_id == form_id
        ]
    def save(self, piece):            self._s.put(piece)


class InMemoryArrangementRepository(AbstractArrangementRepository):
    """Keyed by (workspace_id, form_id, inspection_type); save overwrites."""

    def __init__(self, store: _Store): self._s = store
    def get(self, workspace_id, form_id, inspection_type):
        return self._s.fetch((workspace_id, form_id, inspection_type))
    def save(self, arrangement: Arrangement):
        self._s.put(arrangement, key=arrangement.key)


class InMemoryInspectionPointRepository(AbstractInspectionPointRepository):
    def __init__(self, store: _Store): self._s = store
    def get(self, point_id):          return self._s.fetch(point_id)
    def list_for_piece(self, piece_id):
        return [p for p in self._s.all() if p.piece_id == piece_id]
    def list_for_page(self, piece_id, page_id):
        return [p for p in self._s.all() if p.piece_id == piece_id and p.page_id == page_id]
    def save(self, point):            self._s.put(point)
    def delete(self, point_id):       self._s.remove(point_id)


class InMemoryInspectionRecordRepository(AbstractInspectionRecordRepository):
    def __init__(self, store: _Store): self._s = store
    def list_for_piece(self, piece_id):
        return [r for r in self._s.all() if r.piece_id == piece_id]
    def save(self, record):           self._s.put(record)


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class InMemoryUnitOfWork(AbstractUnitOfWork):
    """
    Wraps all in-memory repositories.  commit() and rollback() are no-ops
    because dict mutations are immediate.
    """

    def __init__(self, db: InMemoryDatabase = _db):
        self.workspaces   = InMemoryWorkspaceRepository(db.workspaces)
        self.forms        = InMemoryFormRepository(db.forms)
        self.pieces       = InMemoryPieceRepository(db.pieces)
        self.arrangements = InMemoryArrangementRepository(db.arrangements)
        self.points       = InMemoryInspectionPointRepository(db.points)
        self.inspections  = InMemoryInspectionRecordRepository(db.inspections)

    def commit(self)   -> None: pass   # no-op for in-memory
    def rollback(self) -> None: pass   # no-op for in-memory


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

# (mark, description, page count, status, (L, W, H) in mm)
_DEMO_PIECES: Tuple[Tuple[str, str, int, PieceStatus, Tuple[float, float, float]], ...] = (
    ("C101", "Column 24x24", 2, PieceStatus.IN_PRODUCTION, (4200.0, 610.0, 610.0)),
    ("B201", "Inverted tee beam", 3, PieceStatus.IN_PRODUCTION, (9100.0, 700.0, 900.0)),
    ("W301", "Wall panel, insulated", 1, PieceStatus.SCHEDULED, (7300.0, 250.0, 3000.0)),
    ("S401", "Stair flight", 2, PieceStatus.SCHEDULED, (3600.0, 1200.0, 1800.0)),
)


def build_piece(
    piece_id: str,
    workspace_id: str,
    form_id: str,
    piece_number: str,
    page_count: int = 1,
    production_order: int = 0,
    status: PieceStatus = PieceStatus.IN_PRODUCTION,
    description: str = "",
    project_id: str = "",
    dimensions: Optional[Dimensions] = None,
) -> Piece:
    """Build a piece with `page_count` drawing pages (ids `<piece_id>-pg<n>`)."""
    pages = tuple(
        DrawingPage(
            id=f"{piece_id}-pg{n}",
            piece_id=piece_id,
            page_number=n,
            image_url=f"/drawings/{piece_number}/{n}.png",
        )
        for n in range(1, page_count + 1)
    )
    return Piece(
        id=piece_id,
        project_id=project_id,
        workspace_id=workspace_id,
        form_id=form_id,
        piece_number=piece_number,
        description=description,
        drawing_id=f"DWG-{piece_number}",
        dimensions=dimensions or Dimensions(),
        production_order=production_order,
        status=status,
        pages=pages,
    )


def seed_demo_data(uow: AbstractUnitOfWork) -> List[Piece]:
    """
    Load one workspace with two forms: FORM-A holds four pieces, FORM-B is
    empty (an inspection there renders the empty state).  Idempotent.
    """
    with uow:
        if uow.workspaces.get("WS-1") is not None:
            return uow.pieces.list_for_form("WS-1", "FORM-A")
        uow.workspaces.save(Workspace(id="WS-1", name="Bay 1 - Long line"))
        uow.forms.save(Form(id="FORM-A", workspace_id="WS-1", name="Column / beam form"))
        uow.forms.save(Form(id="FORM-B", workspace_id="WS-1", name="Wall panel form"))
        pieces = []
        for order, (mark, description, pages, status, dims) in enumerate(_DEMO_PIECES, start=1):
            piece = build_piece(
                piece_id=f"PC-{mark}",
                workspace_id="WS-1",
                form_id="FORM-A",
                piece_number=mark,
                page_count=pages,
                production_order=order,
                status=status,
                description=description,
                project_id="PRJ-1001",
                dimensions=Dimensions(*dims),
            )
            uow.pieces.save(piece)
            pieces.append(piece)
        uow.commit()
        LOGGER.info(
            "Demo data seeded",
            extra={"workspace_id": "WS-1", "piece_count": len(pieces)},
        )
        return pieces
