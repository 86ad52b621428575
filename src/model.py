"""
model.py

Domain models for the Precast Concrete QC piece-inspection workflow.

Entities
--------
- Workspace
- Form
- Piece (with DrawingPage and Dimensions)
- Arrangement
- InspectionPoint
- InspectionRecord
- InspectionRecommendation

All models are frozen dataclasses: they are plain value records and are
never mutated in place.  Helpers that "change" a record return a new one
via dataclasses.replace().  Collections held by a record are tuples.

Each record has an explicit serialize / deserialize pair (``*_to_dict`` /
``*_from_dict``) producing the snake_case JSON shape used on the wire.
Timestamps are always stored in UTC.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class PieceStatus(str, Enum):
    """
    Lifecycle status of a precast piece.

    Forward path: IN_PRODUCTION → READY_FOR_POUR → READY_FOR_YARD
    → READY_FOR_SHIPPING → SHIPPED.  SCHEDULED precedes production.

    INSPECTION_FAILED – pre-pour inspection rejected.
    REWORK_REQUIRED   – post-pour inspection rejected.
    """
    SCHEDULED = "SCHEDULED"
    IN_PRODUCTION = "IN_PRODUCTION"
    READY_FOR_POUR = "READY_FOR_POUR"
    INSPECTION_FAILED = "INSPECTION_FAILED"
    REWORK_REQUIRED = "REWORK_REQUIRED"
    READY_FOR_YARD = "READY_FOR_YARD"
    READY_FOR_SHIPPING = "READY_FOR_SHIPPING"
    SHIPPED = "SHIPPED"


class InspectionType(str, Enum):
    """The two sequential QC gates a piece passes."""
    PRE_POUR = "PRE_POUR"
    POST_POUR = "POST_POUR"


class InspectionStatus(str, Enum):
    """Outcome of one inspection type for one piece."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class PointStatus(str, Enum):
    """Status of an individual inspection point marked on a drawing."""
    PENDING = "PENDING"
    PASSED = "PASSED"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Organisational entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Workspace:
    """A production area (bed, line, plant bay) where pieces are cast."""
    id: str = field(default_factory=_new_id)
    name: str = ""


@dataclass(frozen=True)
class Form:
    """
    A casting form inside a workspace.  Pieces scheduled on the same
    workspace/form are inspected together as one batch.
    """
    id: str = field(default_factory=_new_id)
    workspace_id: str = ""      # FK → Workspace.id
    name: str = ""


# ---------------------------------------------------------------------------
# Piece
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dimensions:
    length_mm: float = 0.0
    width_mm: float = 0.0
    height_mm: float = 0.0


@dataclass(frozen=True)
class DrawingPage:
    """One page of a piece's shop drawing."""
    id: str = field(default_factory=_new_id)
    piece_id: str = ""          # FK → Piece.id
    page_number: int = 1        # 1-based, display order
    image_url: str = ""


@dataclass(frozen=True)
class Piece:
    """
    A single precast concrete unit tracked from production through shipping.

    `qc_status` holds the inspection outcome per InspectionType; a type
    missing from the mapping is PENDING.  `pages` is ordered by page_number.
    """
    id: str = field(default_factory=_new_id)
    project_id: str = ""
    workspace_id: str = ""      # FK → Workspace.id
    form_id: str = ""           # FK → Form.id
    piece_number: str = ""      # the mark, e.g. "P001"
    description: str = ""
    drawing_id: str = ""
    dimensions: Dimensions = field(default_factory=Dimensions)
    production_order: int = 0   # scheduled order on the form
    status: PieceStatus = PieceStatus.SCHEDULED
    qc_status: Mapping[InspectionType, InspectionStatus] = field(default_factory=dict)
    pages: Tuple[DrawingPage, ...] = ()

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def inspection_status(self, inspection_type: InspectionType) -> InspectionStatus:
        return self.qc_status.get(inspection_type, InspectionStatus.PENDING)

    def with_inspection(
        self,
        inspection_type: InspectionType,
        inspection_status: InspectionStatus,
        status: PieceStatus,
        at: Optional[datetime] = None,
    ) -> "Piece":
        qc = dict(self.qc_status)
        qc[inspection_type] = inspection_status
        return replace(self, qc_status=qc, status=status, updated_at=at or _utcnow())


# ---------------------------------------------------------------------------
# Arrangement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Arrangement:
    """
    Technician-chosen display order of the pieces of one
    workspace/form/inspection type.  Saving replaces the whole sequence.
    """
    workspace_id: str = ""
    form_id: str = ""
    inspection_type: InspectionType = InspectionType.PRE_POUR
    piece_ids: Tuple[str, ...] = ()
    saved_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str, InspectionType]:
        return (self.workspace_id, self.form_id, self.inspection_type)


# ---------------------------------------------------------------------------
# Inspection entities
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InspectionPoint:
    """
    A point marked on a drawing page during an inspection.

    x / y are percentages (0–100) of the rendered drawing's width / height,
    so they stay valid when the viewport is resized.  Points are never
    removed automatically; they outlive status transitions of the piece.
    """
    id: str = field(default_factory=_new_id)
    piece_id: str = ""          # FK → Piece.id
    page_id: str = ""           # FK → DrawingPage.id
    inspection_type: InspectionType = InspectionType.PRE_POUR
    x: float = 0.0
    y: float = 0.0
    status: PointStatus = PointStatus.PENDING
    notes: str = ""
    created_by_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class InspectionRecord:
    """
    Write-once record of a completed inspection decision.
    """
    id: str = field(default_factory=_new_id)
    piece_id: str = ""
    inspection_type: InspectionType = InspectionType.PRE_POUR
    status: InspectionStatus = InspectionStatus.APPROVED
    notes: str = ""
    completed_by_id: Optional[str] = None
    completed_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class InspectionRecommendation:
    """Advisory checklist for an inspection; produced by a RecommendationProvider."""
    piece_id: str = ""
    inspection_type: InspectionType = InspectionType.PRE_POUR
    critical_areas: Tuple[str, ...] = ()
    suggested_checks: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _fmt(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def page_to_dict(page: DrawingPage) -> Dict[str, Any]:
    return {
        "id": page.id,
        "piece_id": page.piece_id,
        "page_number": page.page_number,
        "image_url": page.image_url,
    }


def page_from_dict(data: Mapping[str, Any]) -> DrawingPage:
    return DrawingPage(
        id=str(data["id"]),
        piece_id=str(data.get("piece_id", "")),
        page_number=int(data.get("page_number", 1)),
        image_url=data.get("image_url", ""),
    )


def piece_to_dict(piece: Piece) -> Dict[str, Any]:
    return {
        "id": piece.id,
        "project_id": piece.project_id,
        "workspace_id": piece.workspace_id,
        "form_id": piece.form_id,
        "piece_number": piece.piece_number,
        "description": piece.description,
        "drawing_id": piece.drawing_id,
        "dimensions": {
            "length_mm": piece.dimensions.length_mm,
            "width_mm": piece.dimensions.width_mm,
            "height_mm": piece.dimensions.height_mm,
        },
        "production_order": piece.production_order,
        "status": piece.status.value,
        "qc_status": {t.value: s.value for t, s in piece.qc_status.items()},
        "pages": [page_to_dict(p) for p in piece.pages],
        "created_at": _fmt(piece.created_at),
        "updated_at": _fmt(piece.updated_at),
    }


def piece_from_dict(data: Mapping[str, Any]) -> Piece:
    dims = data.get("dimensions") or {}
    pages = sorted(
        (page_from_dict(p) for p in data.get("pages") or ()),
        key=lambda p: p.page_number,
    )
    return Piece(
        id=str(data["id"]),
        project_id=data.get("project_id", ""),
        workspace_id=data.get("workspace_id", ""),
        form_id=data.get("form_id", ""),
        piece_number=data.get("piece_number", ""),
        description=data.get("description", ""),
        drawing_id=data.get("drawing_id", ""),
        dimensions=Dimensions(
            length_mm=float(dims.get("length_mm", 0.0)),
            width_mm=float(dims.get("width_mm", 0.0)),
            height_mm=float(dims.get("height_mm", 0.0)),
        ),
        production_order=int(data.get("production_order", 0)),
        status=PieceStatus(data.get("status", PieceStatus.SCHEDULED.value)),
        qc_status={
            InspectionType(t): InspectionStatus(s)
            for t, s in (data.get("qc_status") or {}).items()
        },
        pages=tuple(pages),
        created_at=_parse_dt(data.get("created_at")) or _utcnow(),
        updated_at=_parse_dt(data.get("updated_at")) or _utcnow(),
    )


def arrangement_to_dict(arrangement: Arrangement) -> Dict[str, Any]:
    return {
        "workspace_id": arrangement.workspace_id,
        "form_id": arrangement.form_id,
        "type": arrangement.inspection_type.value,
        "arrangement": list(arrangement.piece_ids),
        "saved_at": _fmt(arrangement.saved_at),
    }


def arrangement_from_dict(data: Mapping[str, Any]) -> Arrangement:
    return Arrangement(
        workspace_id=str(data.get("workspace_id", "")),
        form_id=str(data.get("form_id", "")),
        inspection_type=InspectionType(data.get("type", InspectionType.PRE_POUR.value)),
        piece_ids=tuple(str(pid) for pid in data.get("arrangement") or ()),
        saved_at=_parse_dt(data.get("saved_at")),
    )


def point_to_dict(point: InspectionPoint) -> Dict[str, Any]:
    return {
        "id": point.id,
        "piece_id": point.piece_id,
        "page_id": point.page_id,
        "type": point.inspection_type.value,
        "x": point.x,
        "y": point.y,
        "status": point.status.value,
        "notes": point.notes,
        "created_by_id": point.created_by_id,
        "created_at": _fmt(point.created_at),
        "updated_at": _fmt(point.updated_at),
    }


def point_from_dict(data: Mapping[str, Any]) -> InspectionPoint:
    return InspectionPoint(
        id=str(data["id"]),
        piece_id=str(data.get("piece_id", "")),
        page_id=str(data.get("page_id", "")),
        inspection_type=InspectionType(data.get("type", InspectionType.PRE_POUR.value)),
        x=float(data.get("x", 0.0)),
        y=float(data.get("y", 0.0)),
        status=PointStatus(data.get("status", PointStatus.PENDING.value)),
        notes=data.get("notes") or "",
        created_by_id=data.get("created_by_id"),
        created_at=_parse_dt(data.get("created_at")) or _utcnow(),
        updated_at=_parse_dt(data.get("updated_at")) or _utcnow(),
    )


def record_to_dict(record: InspectionRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "piece_id": record.piece_id,
        "type": record.inspection_type.value,
        "status": record.status.value,
        "notes": record.notes,
        "completed_by_id": record.completed_by_id,
        "completed_at": _fmt(record.completed_at),
    }


def record_from_dict(data: Mapping[str, Any]) -> InspectionRecord:
    return InspectionRecord(
        id=str(data["id"]),
        piece_id=str(data.get("piece_id", "")),
        inspection_type=InspectionType(data["type"]),
        status=InspectionStatus(data["status"]),
        notes=data.get("notes") or "",
        completed_by_id=data.get("completed_by_id"),
        completed_at=_parse_dt(data.get("completed_at")) or _utcnow(),
    )


def recommendation_to_dict(rec: InspectionRecommendation) -> Dict[str, Any]:
    return {
        "piece_id": rec.piece_id,
        "type": rec.inspection_type.value,
        "critical_areas": list(rec.critical_areas),
        "suggested_checks": list(rec.suggested_checks),
    }


def recommendation_from_dict(data: Mapping[str, Any]) -> InspectionRecommendation:
    return InspectionRecommendation(
        piece_id=str(data.get("piece_id", "")),
        inspection_type=InspectionType(data["type"]),
        critical_areas=tuple(data.get("critical_areas") or ()),
        suggested_checks=tuple(data.get("suggested_checks") or ()),
    )
