"""
application.py

Application layer for the Precast Concrete QC piece-inspection workflow.

Overview
--------
Use cases for the inspection screen and its REST surface.  Each use case
loads what it needs through the Unit of Work, applies the rules in
service.py, saves, and returns DTOs (never domain objects) to api.py.
Repositories and the Unit of Work are abstract here; infrastructure.py
holds the in-memory versions.

Structure
---------
DTOs
    PieceDTO, DrawingPageDTO, DimensionsDTO, ArrangementDTO,
    InspectionPointDTO, InspectionRecordDTO, EligibilityDTO, RecommendationDTO

Repository interfaces
    AbstractWorkspaceRepository
    AbstractFormRepository
    AbstractPieceRepository
    AbstractArrangementRepository
    AbstractInspectionPointRepository
    AbstractInspectionRecordRepository

Unit of Work
    AbstractUnitOfWork

Use Cases
    --- Pieces ---
    ListPiecesForInspectionUseCase
    GetPieceUseCase
    GetPieceEligibilityUseCase

    --- Arrangement ---
    GetArrangementUseCase
    SaveArrangementUseCase

    --- Inspection points ---
    CreateInspectionPointUseCase
    ListInspectionPointsUseCase
    UpdateInspectionPointUseCase
    DeleteInspectionPointUseCase

    --- Completion ---
    CompleteInspectionUseCase
    ListInspectionHistoryUseCase
    GetInspectionRecommendationsUseCase

Design notes
------------
- Use cases return DTOs only; no domain objects cross the application
  boundary.
- Each use case accepts a UnitOfWork; the UoW exposes all repositories and
  handles commit/rollback.
- All timestamps flowing out are ISO-8601 strings (UTC).
- Errors bubble up as ApplicationError (business), NotFoundError,
  ConflictError, or ValueError (validation).
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, List, Optional

from log import get_logger
from model import (
    Arrangement,
    Form,
    InspectionPoint,
    InspectionRecord,
    InspectionStatus,
    InspectionType,
    Piece,
    PointStatus,
    Workspace,
)
from service import (
    AlreadyDecidedError,
    ArrangementService,
    CompletionService,
    Eligibility,
    EligibilityService,
    RecommendationProvider,
    SchedulingService,
)

LOGGER = get_logger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ApplicationError(Exception):
    """Raised when a use case cannot complete due to a business rule violation."""


class NotFoundError(ApplicationError):
    """Raised when a requested entity does not exist."""


class ConflictError(ApplicationError):
    """Raised when an operation conflicts with the current state (e.g. already decided)."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt(dt: Optional[datetime]) -> Optional[str]:
    """Convert a datetime to an ISO-8601 UTC string, or None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================================================
# DTO DEFINITIONS
# ===========================================================================

@dataclass
class DimensionsDTO:
    length_mm: float
    width_mm: float
    height_mm: float


@dataclass
class DrawingPageDTO:
    id: str
    piece_id: str
    page_number: int
    image_url: str


@dataclass
class InspectionPointDTO:
    id: str
    piece_id: str
    page_id: str
    type: str
    x: float
    y: float
    status: str
    notes: str
    created_by_id: Optional[str]
    created_at: str
    updated_at: str


@dataclass
class PieceDTO:
    """
    A piece as shown in an inspection view.

    `inspection_status` and `inspection_points` are scoped to the inspection
    type the piece was requested for (None / empty when no type was given).
    """
    id: str
    project_id: str
    workspace_id: str
    form_id: str
    piece_number: str
    description: str
    drawing_id: str
    dimensions: DimensionsDTO
    production_order: int
    status: str
    qc_status: Dict[str, str]
    page_count: int
    pages: List[DrawingPageDTO]
    inspection_status: Optional[str] = None
    inspection_points: List[InspectionPointDTO] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ArrangementDTO:
    workspace_id: str
    form_id: str
    type: str
    arrangement: List[str]
    saved_at: Optional[str]


@dataclass
class InspectionRecordDTO:
    id: str
    piece_id: str
    type: str
    status: str
    notes: str
    completed_by_id: Optional[str]
    completed_at: str


@dataclass
class EligibilityDTO:
    piece_id: str
    status: str
    pour_eligible: bool
    yard_eligible: bool
    shipping_eligible: bool


@dataclass
class RecommendationDTO:
    piece_id: str
    type: str
    critical_areas: List[str]
    suggested_checks: List[str]


# ===========================================================================
# DTO ASSEMBLERS
# ===========================================================================

class _Assembler:
    """Converts domain model instances into DTOs."""

    @staticmethod
    def point(p: InspectionPoint) -> InspectionPointDTO:
        return InspectionPointDTO(
            id=p.id,
            piece_id=p.piece_id,
            page_id=p.page_id,
            type=p.inspection_type.value,
            x=round(p.x, 4),
            y=round(p.y, 4),
            status=p.status.value,
            notes=p.notes,
            created_by_id=p.created_by_id,
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
        )

    @staticmethod
    def piece(
        p: Piece,
        inspection_type: Optional[InspectionType] = None,
        points: Optional[List[InspectionPoint]] = None,
    ) -> PieceDTO:
        return PieceDTO(
            id=p.id,
            project_id=p.project_id,
            workspace_id=p.workspace_id,
            form_id=p.form_id,
            piece_number=p.piece_number,
            description=p.description,
            drawing_id=p.drawing_id,
            dimensions=DimensionsDTO(
                length_mm=p.dimensions.length_mm,
                width_mm=p.dimensions.width_mm,
                height_mm=p.dimensions.height_mm,
            ),
            production_order=p.production_order,
            status=p.status.value,
            qc_status={t.value: s.value for t, s in p.qc_status.items()},
            page_count=p.page_count,
            pages=[
                DrawingPageDTO(
                    id=pg.id,
                    piece_id=pg.piece_id,
                    page_number=pg.page_number,
                    image_url=pg.image_url,
                )
                for pg in p.pages
            ],
            inspection_status=(
                p.inspection_status(inspection_type).value if inspection_type else None
            ),
            inspection_points=[_Assembler.point(pt) for pt in points or []],
            created_at=_fmt(p.created_at),
            updated_at=_fmt(p.updated_at),
        )

    @staticmethod
    def arrangement(
        a: Optional[Arrangement],
        workspace_id: str,
        form_id: str,
        inspection_type: InspectionType,
    ) -> ArrangementDTO:
        return ArrangementDTO(
            workspace_id=workspace_id,
            form_id=form_id,
            type=inspection_type.value,
            arrangement=list(a.piece_ids) if a else [],
            saved_at=_fmt(a.saved_at) if a else None,
        )

    @staticmethod
    def record(r: InspectionRecord) -> InspectionRecordDTO:
        return InspectionRecordDTO(
            id=r.id,
            piece_id=r.piece_id,
            type=r.inspection_type.value,
            status=r.status.value,
            notes=r.notes,
            completed_by_id=r.completed_by_id,
            completed_at=_fmt(r.completed_at),
        )

    @staticmethod
    def eligibility(e: Eligibility) -> EligibilityDTO:
        return EligibilityDTO(
            piece_id=e.piece_id,
            status=e.status.value,
            pour_eligible=e.pour_eligible,
            yard_eligible=e.yard_eligible,
            shipping_eligible=e.shipping_eligible,
        )


# ===========================================================================
# REPOSITORY INTERFACES
# ===========================================================================

class AbstractWorkspaceRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, workspace_id: str) -> Optional[Workspace]: ...
    @abc.abstractmethod
    def save(self, workspace: Workspace) -> None: ...


class AbstractFormRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, form_id: str) -> Optional[Form]: ...
    @abc.abstractmethod
    def list_for_workspace(self, workspace_id: str) -> List[Form]: ...
    @abc.abstractmethod
    def save(self, form: Form) -> None: ...


class AbstractPieceRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, piece_id: str) -> Optional[Piece]: ...
    @abc.abstractmethod
    def list_for_form(self, workspace_id: str, form_id: str) -> List[Piece]: ...
    @abc.abstractmethod
    def save(self, piece: Piece) -> None: ...


class AbstractArrangementRepository(abc.ABC):
    @abc.abstractmethod
    def get(
        self, workspace_id: str, form_id: str, inspection_type: InspectionType
    ) -> Optional[Arrangement]: ...
    @abc.abstractmethod
    def save(self, arrangement: Arrangement) -> None: ...


class AbstractInspectionPointRepository(abc.ABC):
    @abc.abstractmethod
    def get(self, point_id: str) -> Optional[InspectionPoint]: ...
    @abc.abstractmethod
    def list_for_piece(self, piece_id: str) -> List[InspectionPoint]: ...
    @abc.abstractmethod
    def list_for_page(self, piece_id: str, page_id: str) -> List[InspectionPoint]: ...
    @abc.abstractmethod
    def save(self, point: InspectionPoint) -> None: ...
    @abc.abstractmethod
    def delete(self, point_id: str) -> None: ...


class AbstractInspectionRecordRepository(abc.ABC):
    @abc.abstractmethod
    def list_for_piece(self, piece_id: str) -> List[InspectionRecord]: ...
    @abc.abstractmethod
    def save(self, record: InspectionRecord) -> None: ...


# ===========================================================================
# UNIT OF WORK
# ===========================================================================

class AbstractUnitOfWork(abc.ABC):
    """
    Groups all repositories under a single transactional boundary.
    Use as a context manager:

        with uow:
            uow.pieces.save(piece)
            uow.commit()
    """
    workspaces: AbstractWorkspaceRepository
    forms: AbstractFormRepository
    pieces: AbstractPieceRepository
    arrangements: AbstractArrangementRepository
    points: AbstractInspectionPointRepository
    inspections: AbstractInspectionRecordRepository

    def __enter__(self) -> "AbstractUnitOfWork":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if exc_type:
            self.rollback()
        else:
            self.commit()

    @abc.abstractmethod
    def commit(self) -> None: ...

    @abc.abstractmethod
    def rollback(self) -> None: ...


# ===========================================================================
# SERVICE SINGLETONS (shared across use cases)
# ===========================================================================

_scheduling_svc = SchedulingService()
_arrangement_svc = ArrangementService()
_completion_svc = CompletionService()
_eligibility_svc = EligibilityService()


# ===========================================================================
# USE CASE HELPERS
# ===========================================================================

def _get_form_or_raise(uow: AbstractUnitOfWork, workspace_id: str, form_id: str) -> Form:
    if uow.workspaces.get(workspace_id) is None:
        raise NotFoundError(f"Workspace {workspace_id} not found.")
    form = uow.forms.get(form_id)
    if form is None or form.workspace_id != workspace_id:
        raise NotFoundError(f"Form {form_id} not found in workspace {workspace_id}.")
    return form


def _get_piece_or_raise(uow: AbstractUnitOfWork, piece_id: str) -> Piece:
    piece = uow.pieces.get(piece_id)
    if piece is None:
        raise NotFoundError(f"Piece {piece_id} not found.")
    return piece


def _get_point_or_raise(uow: AbstractUnitOfWork, point_id: str) -> InspectionPoint:
    point = uow.points.get(point_id)
    if point is None:
        raise NotFoundError(f"Inspection point {point_id} not found.")
    return point


def _points_of_type(
    uow: AbstractUnitOfWork, piece_id: str, inspection_type: Optional[InspectionType]
) -> List[InspectionPoint]:
    if inspection_type is None:
        return []
    points = [
        p for p in uow.points.list_for_piece(piece_id)
        if p.inspection_type == inspection_type
    ]
    return sorted(points, key=lambda p: p.created_at)


def _validate_coordinate(name: str, value: float) -> None:
    if not 0.0 <= value <= 100.0:
        raise ValueError(f"{name} must be a percentage between 0 and 100, got {value}.")


# ===========================================================================
# USE CASES — PIECES
# ===========================================================================

class ListPiecesForInspectionUseCase:
    def execute(
        self,
        workspace_id: str,
        form_id: str,
        inspection_type: InspectionType,
        uow: AbstractUnitOfWork,
    ) -> List[PieceDTO]:
        with uow:
            _get_form_or_raise(uow, workspace_id, form_id)
            pieces = _scheduling_svc.scheduled_pieces(
                uow.pieces.list_for_form(workspace_id, form_id), inspection_type
            )
            return [
                _Assembler.piece(p, inspection_type, _points_of_type(uow, p.id, inspection_type))
                for p in pieces
            ]


class GetPieceUseCase:
    def execute(
        self,
        piece_id: str,
        uow: AbstractUnitOfWork,
        inspection_type: Optional[InspectionType] = None,
    ) -> PieceDTO:
        with uow:
            piece = _get_piece_or_raise(uow, piece_id)
            return _Assembler.piece(
                piece, inspection_type, _points_of_type(uow, piece.id, inspection_type)
            )


class GetPieceEligibilityUseCase:
    def execute(self, piece_id: str, uow: AbstractUnitOfWork) -> EligibilityDTO:
        with uow:
            piece = _get_piece_or_raise(uow, piece_id)
            return _Assembler.eligibility(_eligibility_svc.evaluate(piece))


# ===========================================================================
# USE CASES — ARRANGEMENT
# ===========================================================================

class GetArrangementUseCase:
    def execute(
        self,
        workspace_id: str,
        form_id: str,
        inspection_type: InspectionType,
        uow: AbstractUnitOfWork,
    ) -> ArrangementDTO:
        with uow:
            _get_form_or_raise(uow, workspace_id, form_id)
            arrangement = uow.arrangements.get(workspace_id, form_id, inspection_type)
            return _Assembler.arrangement(arrangement, workspace_id, form_id, inspection_type)


@dataclass
class SaveArrangementCommand:
    workspace_id: str
    form_id: str
    inspection_type: InspectionType
    piece_ids: List[str]
    acting_user_id: Optional[str] = None


class SaveArrangementUseCase:
    """
    Replace the saved arrangement of a workspace/form/type.
    No merge with the previous order: the last save wins.
    """

    def execute(self, cmd: SaveArrangementCommand, uow: AbstractUnitOfWork) -> ArrangementDTO:
        with uow:
            _get_form_or_raise(uow, cmd.workspace_id, cmd.form_id)
            known = [p.id for p in uow.pieces.list_for_form(cmd.workspace_id, cmd.form_id)]
            try:
                piece_ids = _arrangement_svc.validate_arrangement(cmd.piece_ids, known)
            except ValueError as exc:
                raise ApplicationError(str(exc)) from exc
            arrangement = Arrangement(
                workspace_id=cmd.workspace_id,
                form_id=cmd.form_id,
                inspection_type=cmd.inspection_type,
                piece_ids=piece_ids,
                saved_at=_utcnow(),
            )
            uow.arrangements.save(arrangement)
            uow.commit()
            LOGGER.info(
                "Arrangement saved",
                extra={
                    "workspace_id": cmd.workspace_id,
                    "form_id": cmd.form_id,
                    "inspection_type": cmd.inspection_type.value,
                    "piece_count": len(piece_ids),
                },
            )
            return _Assembler.arrangement(
                arrangement, cmd.workspace_id, cmd.form_id, cmd.inspection_type
            )


# ===========================================================================
# USE CASES — INSPECTION POINTS
# ===========================================================================

@dataclass
class CreateInspectionPointCommand:
    piece_id: str
    page_id: str
    inspection_type: InspectionType
    x: float
    y: float
    notes: str = ""
    acting_user_id: Optional[str] = None


class CreateInspectionPointUseCase:
    def execute(
        self, cmd: CreateInspectionPointCommand, uow: AbstractUnitOfWork
    ) -> InspectionPointDTO:
        with uow:
            piece = _get_piece_or_raise(uow, cmd.piece_id)
            if not any(pg.id == cmd.page_id for pg in piece.pages):
                raise NotFoundError(
                    f"Drawing page {cmd.page_id} not found on piece {cmd.piece_id}."
                )
            _validate_coordinate("x", cmd.x)
            _validate_coordinate("y", cmd.y)
            point = InspectionPoint(
                piece_id=cmd.piece_id,
                page_id=cmd.page_id,
                inspection_type=cmd.inspection_type,
                x=cmd.x,
                y=cmd.y,
                status=PointStatus.PENDING,
                notes=cmd.notes,
                created_by_id=cmd.acting_user_id,
            )
            uow.points.save(point)
            uow.commit()
            LOGGER.info(
                "Inspection point created",
                extra={"piece_id": cmd.piece_id, "page_id": cmd.page_id, "point_id": point.id},
            )
            return _Assembler.point(point)


class ListInspectionPointsUseCase:
    def execute(
        self,
        piece_id: str,
        page_id: str,
        uow: AbstractUnitOfWork,
        inspection_type: Optional[InspectionType] = None,
    ) -> List[InspectionPointDTO]:
        with uow:
            _get_piece_or_raise(uow, piece_id)
            points = uow.points.list_for_page(piece_id, page_id)
            if inspection_type is not None:
                points = [p for p in points if p.inspection_type == inspection_type]
            return [_Assembler.point(p) for p in sorted(points, key=lambda p: p.created_at)]


@dataclass
class UpdateInspectionPointCommand:
    point_id: str
    status: Optional[PointStatus] = None
    notes: Optional[str] = None


class UpdateInspectionPointUseCase:
    def execute(
        self, cmd: UpdateInspectionPointCommand, uow: AbstractUnitOfWork
    ) -> InspectionPointDTO:
        with uow:
            point = _get_point_or_raise(uow, cmd.point_id)
            changes = {}
            if cmd.status is not None:
                changes["status"] = cmd.status
            if cmd.notes is not None:
                changes["notes"] = cmd.notes
            point = replace(point, updated_at=_utcnow(), **changes)
            uow.points.save(point)
            uow.commit()
            return _Assembler.point(point)


class DeleteInspectionPointUseCase:
    def execute(self, point_id: str, uow: AbstractUnitOfWork) -> None:
        with uow:
            _get_point_or_raise(uow, point_id)
            uow.points.delete(point_id)
            uow.commit()
            LOGGER.info("Inspection point deleted", extra={"point_id": point_id})


# ===========================================================================
# USE CASES — COMPLETION
# ===========================================================================

@dataclass
class CompleteInspectionCommand:
    piece_id: str
    inspection_type: InspectionType
    decision: InspectionStatus
    notes: str = ""
    acting_user_id: Optional[str] = None


class CompleteInspectionUseCase:
    """
    Record an approve / reject decision and move the piece along its
    lifecycle.  Returns the updated piece as seen by the same inspection type.
    """

    def execute(self, cmd: CompleteInspectionCommand, uow: AbstractUnitOfWork) -> PieceDTO:
        with uow:
            piece = _get_piece_or_raise(uow, cmd.piece_id)
            try:
                updated, record = _completion_svc.complete(
                    piece,
                    cmd.inspection_type,
                    cmd.decision,
                    notes=cmd.notes,
                    completed_by_id=cmd.acting_user_id,
                )
            except AlreadyDecidedError as exc:
                raise ConflictError(str(exc)) from exc
            except ValueError as exc:
                raise ApplicationError(str(exc)) from exc
            uow.pieces.save(updated)
            uow.inspections.save(record)
            uow.commit()
            LOGGER.info(
                "Inspection completed",
                extra={
                    "piece_id": updated.id,
                    "inspection_type": cmd.inspection_type.value,
                    "decision": cmd.decision.value,
                    "piece_status": updated.status.value,
                },
            )
            return _Assembler.piece(
                updated,
                cmd.inspection_type,
                _points_of_type(uow, updated.id, cmd.inspection_type),
            )


class ListInspectionHistoryUseCase:
    def execute(self, piece_id: str, uow: AbstractUnitOfWork) -> List[InspectionRecordDTO]:
        with uow:
            _get_piece_or_raise(uow, piece_id)
            records = uow.inspections.list_for_piece(piece_id)
            return [
                _Assembler.record(r)
                for r in sorted(records, key=lambda r: r.completed_at, reverse=True)
            ]


class GetInspectionRecommendationsUseCase:
    def execute(
        self,
        piece_id: str,
        inspection_type: InspectionType,
        provider: RecommendationProvider,
        uow: AbstractUnitOfWork,
    ) -> RecommendationDTO:
        with uow:
            piece = _get_piece_or_raise(uow, piece_id)
            rec = provider.recommend(piece, inspection_type)
            return RecommendationDTO(
                piece_id=rec.piece_id,
                type=rec.inspection_type.value,
                critical_areas=list(rec.critical_areas),
                suggested_checks=list(rec.suggested_checks),
            )
