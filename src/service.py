"""
service.py

Service layer for the Precast Concrete QC piece-inspection workflow.

Responsibilities
----------------
Pure business rules shared by the REST backend (application.py) and the
technician-side workflow (workflow.py).  Services receive and return the
immutable domain records from model.py; nothing here performs I/O.

Services
--------
- SchedulingService       – which pieces a workspace/form/type inspection covers
- ArrangementService      – merging a saved order with the scheduled set, reorder
- Navigator               – piece × page cursor state machine with clamping
- ViewportBox             – click → percentage coordinate mapping
- CompletionService       – approve / reject transitions of a piece
- EligibilityService      – pour / yard / shipping eligibility derived from QC
- RecommendationProvider  – injected inspection-advice capability

Design notes
------------
- Business rule violations raise ValueError (or a subclass) with a
  descriptive message; the application layer translates them.
- Out-of-range navigation is never an error for callers: Navigator clamps.
  ValidationError exists for the strict cursor constructor only.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from model import (
    InspectionRecommendation,
    InspectionRecord,
    InspectionStatus,
    InspectionType,
    Piece,
    PieceStatus,
)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationError(ValueError):
    """Raised for an out-of-range navigation position."""


class AlreadyDecidedError(ValueError):
    """Raised when an inspection that is already decided is completed again."""


# ---------------------------------------------------------------------------
# SchedulingService
# ---------------------------------------------------------------------------

# Piece statuses that put a piece on the inspection list of each type.
# Decided statuses stay listed so a reload does not drop inspected pieces.
SCHEDULED_STATUSES: Dict[InspectionType, frozenset] = {
    InspectionType.PRE_POUR: frozenset({
        PieceStatus.SCHEDULED,
        PieceStatus.IN_PRODUCTION,
        PieceStatus.READY_FOR_POUR,
        PieceStatus.INSPECTION_FAILED,
    }),
    InspectionType.POST_POUR: frozenset({
        PieceStatus.READY_FOR_POUR,
        PieceStatus.REWORK_REQUIRED,
        PieceStatus.READY_FOR_YARD,
    }),
}


class SchedulingService:
    """Selects the pieces scheduled for one workspace/form/type inspection."""

    def is_scheduled(self, piece: Piece, inspection_type: InspectionType) -> bool:
        return piece.status in SCHEDULED_STATUSES[inspection_type]

    def scheduled_pieces(
        self,
        pieces: Iterable[Piece],
        inspection_type: InspectionType,
    ) -> List[Piece]:
        """Filter to scheduled pieces, in production order (mark as tie-break)."""
        selected = [p for p in pieces if self.is_scheduled(p, inspection_type)]
        return sorted(selected, key=lambda p: (p.production_order, p.piece_number))


# ---------------------------------------------------------------------------
# ArrangementService
# ---------------------------------------------------------------------------

class ArrangementService:
    """
    Ordering rules for the technician-chosen piece arrangement.
    """

    def apply_arrangement(
        self,
        scheduled: Sequence[Piece],
        saved_ids: Sequence[str],
    ) -> List[Piece]:
        """
        Return the scheduled pieces ordered by a saved arrangement.

        Saved ids come first in saved order; ids that are no longer scheduled
        and repeated ids are ignored.  Scheduled pieces missing from the
        saved arrangement follow in their original order, so the result is
        always a permutation of exactly `scheduled`.
        """
        by_id = {p.id: p for p in scheduled}
        ordered: List[Piece] = []
        seen = set()
        for piece_id in saved_ids:
            if piece_id in by_id and piece_id not in seen:
                ordered.append(by_id[piece_id])
                seen.add(piece_id)
        ordered.extend(p for p in scheduled if p.id not in seen)
        return ordered

    def reorder(self, items: Sequence[T], source_index: int, dest_index: int) -> List[T]:
        """
        Remove the item at source_index and reinsert it at dest_index.
        All other items keep their relative order.
        """
        n = len(items)
        if not 0 <= source_index < n:
            raise ValueError(f"source_index {source_index} out of range for {n} items.")
        if not 0 <= dest_index < n:
            raise ValueError(f"dest_index {dest_index} out of range for {n} items.")
        result = list(items)
        moved = result.pop(source_index)
        result.insert(dest_index, moved)
        return result

    def validate_arrangement(
        self,
        piece_ids: Sequence[str],
        known_ids: Iterable[str],
    ) -> Tuple[str, ...]:
        """Reject duplicates and ids that do not belong to the workspace/form."""
        if len(set(piece_ids)) != len(piece_ids):
            raise ValueError("arrangement must not contain duplicate piece ids.")
        known = set(known_ids)
        unknown = [pid for pid in piece_ids if pid not in known]
        if unknown:
            raise ValueError(f"arrangement references unknown pieces: {unknown}.")
        return tuple(piece_ids)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------

class SwipeDirection(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"


class NavigationAction(str, Enum):
    NEXT_PIECE = "next_piece"
    PREVIOUS_PIECE = "previous_piece"
    NEXT_PAGE = "next_page"
    PREVIOUS_PAGE = "previous_page"


# Swiping up pulls the next page into view, like scrolling a document.
DEFAULT_SWIPE_MAPPING: Dict[SwipeDirection, NavigationAction] = {
    SwipeDirection.LEFT: NavigationAction.NEXT_PIECE,
    SwipeDirection.RIGHT: NavigationAction.PREVIOUS_PIECE,
    SwipeDirection.UP: NavigationAction.NEXT_PAGE,
    SwipeDirection.DOWN: NavigationAction.PREVIOUS_PAGE,
}


@dataclass(frozen=True)
class NavigationCursor:
    """Position in the piece × page grid of the current arrangement."""
    piece_index: int = 0
    page_index: int = 0

    @classmethod
    def checked(
        cls,
        piece_index: int,
        page_index: int,
        page_counts: Sequence[int],
    ) -> "NavigationCursor":
        """Build a cursor, raising ValidationError if it is out of bounds."""
        if not 0 <= piece_index < max(len(page_counts), 1):
            raise ValidationError(
                f"piece_index {piece_index} out of range for {len(page_counts)} pieces."
            )
        page_total = page_counts[piece_index] if page_counts else 0
        if not 0 <= page_index < max(page_total, 1):
            raise ValidationError(
                f"page_index {page_index} out of range for {page_total} pages."
            )
        return cls(piece_index, page_index)


def _clamp(value: int, upper: int) -> int:
    return max(0, min(value, upper))


class Navigator:
    """
    Cursor state machine over (piece index, page index).

    `page_counts[i]` is the number of drawing pages of the i-th piece in the
    current arrangement.  Every transition clamps to the grid and returns
    True only if the cursor moved; the page index resets to 0 whenever the
    piece index changes.  A piece with no pages still has page index 0.
    """

    def __init__(self, page_counts: Sequence[int] = (), cursor: Optional[NavigationCursor] = None):
        self._page_counts: Tuple[int, ...] = tuple(page_counts)
        self.cursor = cursor or NavigationCursor()
        self.cursor = self._coerce(self.cursor.piece_index, self.cursor.page_index)

    @property
    def page_counts(self) -> Tuple[int, ...]:
        return self._page_counts

    @property
    def piece_count(self) -> int:
        return len(self._page_counts)

    def page_count(self, piece_index: Optional[int] = None) -> int:
        index = self.cursor.piece_index if piece_index is None else piece_index
        if not self._page_counts:
            return 0
        return self._page_counts[index]

    def _coerce(self, piece_index: int, page_index: int) -> NavigationCursor:
        try:
            return NavigationCursor.checked(piece_index, page_index, self._page_counts)
        except ValidationError:
            piece_index = _clamp(piece_index, max(self.piece_count - 1, 0))
            page_upper = max(self.page_count(piece_index) - 1, 0) if self._page_counts else 0
            return NavigationCursor(piece_index, _clamp(page_index, page_upper))

    def _move_to(self, piece_index: int, page_index: int) -> bool:
        current = self.cursor
        piece_index = _clamp(piece_index, max(self.piece_count - 1, 0))
        if piece_index != current.piece_index:
            page_index = 0
        target = self._coerce(piece_index, page_index)
        self.cursor = target
        return target != current

    def next_piece(self) -> bool:
        return self._move_to(self.cursor.piece_index + 1, self.cursor.page_index)

    def previous_piece(self) -> bool:
        return self._move_to(self.cursor.piece_index - 1, self.cursor.page_index)

    def next_page(self) -> bool:
        return self._move_to(self.cursor.piece_index, self.cursor.page_index + 1)

    def previous_page(self) -> bool:
        return self._move_to(self.cursor.piece_index, self.cursor.page_index - 1)

    def go_to_piece(self, piece_index: int) -> bool:
        """Jump to a piece (arrangement-card click); always lands on page 0."""
        return self._move_to(piece_index, 0)

    def apply(self, action: NavigationAction) -> bool:
        handlers = {
            NavigationAction.NEXT_PIECE: self.next_piece,
            NavigationAction.PREVIOUS_PIECE: self.previous_piece,
            NavigationAction.NEXT_PAGE: self.next_page,
            NavigationAction.PREVIOUS_PAGE: self.previous_page,
        }
        return handlers[action]()

    def swipe(
        self,
        direction: SwipeDirection,
        mapping: Optional[Dict[SwipeDirection, NavigationAction]] = None,
    ) -> bool:
        action = (mapping or DEFAULT_SWIPE_MAPPING).get(direction)
        if action is None:
            return False
        return self.apply(action)

    def reset(self, page_counts: Sequence[int], piece_index: int = 0, page_index: int = 0) -> None:
        """Replace the grid (new arrangement) and re-clamp the cursor."""
        self._page_counts = tuple(page_counts)
        self.cursor = self._coerce(piece_index, page_index)


# ---------------------------------------------------------------------------
# ViewportBox
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ViewportBox:
    """Bounding box of the rendered drawing, in client pixels."""
    left: float
    top: float
    width: float
    height: float

    def to_percent(self, client_x: float, client_y: float) -> Tuple[float, float]:
        """
        Convert a click position to percentage coordinates of the box.

        Results are clamped to [0, 100]; a click on the border maps to the
        edge rather than outside the drawing.
        """
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Viewport box must have a positive width and height.")
        x = (client_x - self.left) / self.width * 100.0
        y = (client_y - self.top) / self.height * 100.0
        return (min(max(x, 0.0), 100.0), min(max(y, 0.0), 100.0))


# ---------------------------------------------------------------------------
# CompletionService
# ---------------------------------------------------------------------------

# (inspection type, decision) → resulting piece status
COMPLETION_TRANSITIONS: Dict[Tuple[InspectionType, InspectionStatus], PieceStatus] = {
    (InspectionType.PRE_POUR, InspectionStatus.APPROVED): PieceStatus.READY_FOR_POUR,
    (InspectionType.PRE_POUR, InspectionStatus.REJECTED): PieceStatus.INSPECTION_FAILED,
    (InspectionType.POST_POUR, InspectionStatus.APPROVED): PieceStatus.READY_FOR_YARD,
    (InspectionType.POST_POUR, InspectionStatus.REJECTED): PieceStatus.REWORK_REQUIRED,
}


class CompletionService:
    """
    Approve / reject decisions for a piece's inspection.

    A decision is terminal for its (piece, inspection type) pair: there is
    no transition back to PENDING.  Post-pour inspection requires an
    approved pre-pour inspection.
    """

    def complete(
        self,
        piece: Piece,
        inspection_type: InspectionType,
        decision: InspectionStatus,
        notes: str = "",
        completed_by_id: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> Tuple[Piece, InspectionRecord]:
        """Return the updated piece and the record of the decision (both unsaved)."""
        if decision == InspectionStatus.PENDING:
            raise ValueError("decision must be APPROVED or REJECTED.")
        if piece.inspection_status(inspection_type) != InspectionStatus.PENDING:
            raise AlreadyDecidedError(
                f"{inspection_type.value} inspection of piece {piece.piece_number or piece.id} "
                f"is already {piece.inspection_status(inspection_type).value}."
            )
        if (
            inspection_type == InspectionType.POST_POUR
            and piece.inspection_status(InspectionType.PRE_POUR) != InspectionStatus.APPROVED
        ):
            raise ValueError(
                f"Piece {piece.piece_number or piece.id} has no approved PRE_POUR inspection."
            )

        at = completed_at or _utcnow()
        new_status = COMPLETION_TRANSITIONS[(inspection_type, decision)]
        updated = piece.with_inspection(inspection_type, decision, new_status, at=at)
        record = InspectionRecord(
            piece_id=piece.id,
            inspection_type=inspection_type,
            status=decision,
            notes=notes,
            completed_by_id=completed_by_id,
            completed_at=at,
        )
        return updated, record


# ---------------------------------------------------------------------------
# EligibilityService
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Eligibility:
    piece_id: str
    status: PieceStatus
    pour_eligible: bool
    yard_eligible: bool
    shipping_eligible: bool


class EligibilityService:
    """
    Read-only view of what a piece's QC outcome unlocks downstream.
    Production reads pour eligibility; yard and shipping read the rest.
    """

    def evaluate(self, piece: Piece) -> Eligibility:
        pre = piece.inspection_status(InspectionType.PRE_POUR)
        post = piece.inspection_status(InspectionType.POST_POUR)
        return Eligibility(
            piece_id=piece.id,
            status=piece.status,
            pour_eligible=(
                pre == InspectionStatus.APPROVED
                and piece.status == PieceStatus.READY_FOR_POUR
            ),
            yard_eligible=post == InspectionStatus.APPROVED,
            shipping_eligible=(
                post == InspectionStatus.APPROVED
                and piece.status in (PieceStatus.READY_FOR_YARD, PieceStatus.READY_FOR_SHIPPING)
            ),
        )


# ---------------------------------------------------------------------------
# RecommendationProvider
# ---------------------------------------------------------------------------

class RecommendationProvider(abc.ABC):
    """Capability that suggests what to check during an inspection."""

    @abc.abstractmethod
    def recommend(
        self,
        piece: Piece,
        inspection_type: InspectionType,
    ) -> InspectionRecommendation: ...


_STATIC_CHECKS: Dict[InspectionType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    InspectionType.PRE_POUR: (
        ("Rebar placement and spacing", "Embed and insert positions", "Lifting anchors"),
        (
            "Verify form dimensions match the drawing",
            "Check concrete cover requirements",
            "Confirm blockouts and chamfers are installed",
        ),
    ),
    InspectionType.POST_POUR: (
        ("Edges and corners", "Exposed embeds", "Surface finish"),
        (
            "Measure overall dimensions against tolerances",
            "Inspect for cracks, honeycombing and bugholes",
            "Verify piece mark and date are stamped",
        ),
    ),
}


class StaticRecommendationProvider(RecommendationProvider):
    """Default provider: a fixed checklist per inspection type."""

    def recommend(self, piece: Piece, inspection_type: InspectionType) -> InspectionRecommendation:
        areas, checks = _STATIC_CHECKS[inspection_type]
        return InspectionRecommendation(
            piece_id=piece.id,
            inspection_type=inspection_type,
            critical_areas=areas,
            suggested_checks=checks,
        )
