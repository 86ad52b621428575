"""
workflow.py

Client-side piece-inspection session.

One PieceInspectionSession backs one inspection screen for a
(workspace, form, inspection type).  It loads the scheduled pieces in their
saved arrangement, lets the technician reorder them, navigates the
piece × page grid, marks inspection points on the current drawing page and
approves / rejects the current piece.

Session operations never raise.  Failures are caught at the call site,
logged, surfaced through the Notifier (the toast surface) and reported
through the return value:

  NotFoundError        → view_state NOT_FOUND  (full-page message)
  EmptyResultError     → view_state EMPTY      (nothing scheduled)
  PersistenceError     → toast; reorder is visibly reverted
  out-of-range moves   → clamped, never surfaced

Network calls suspend only the operation that issued them.  Results that
arrive after the technician has moved to another piece or page are
discarded instead of being applied to the new view.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from client import (
    InspectionApiClient,
    InspectionClientError,
    NotFoundError,
)
from log import get_logger
from model import (
    DrawingPage,
    InspectionPoint,
    InspectionRecommendation,
    InspectionStatus,
    InspectionType,
    Piece,
)
from service import (
    DEFAULT_SWIPE_MAPPING,
    ArrangementService,
    NavigationAction,
    NavigationCursor,
    Navigator,
    SwipeDirection,
    ViewportBox,
)

LOGGER = get_logger(__name__)


class EmptyResultError(Exception):
    """No pieces are scheduled for the workspace/form/type."""


class ViewState(str, Enum):
    LOADING = "LOADING"
    READY = "READY"
    EMPTY = "EMPTY"
    NOT_FOUND = "NOT_FOUND"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class Notifier(abc.ABC):
    """User-facing one-shot messages (toasts)."""

    @abc.abstractmethod
    def notify(self, level: str, message: str) -> None: ...

    def info(self, message: str) -> None:
        self.notify("info", message)

    def error(self, message: str) -> None:
        self.notify("error", message)


class LoggingNotifier(Notifier):
    def notify(self, level: str, message: str) -> None:
        if level == "error":
            LOGGER.warning(message, extra={"toast": level})
        else:
            LOGGER.info(message, extra={"toast": level})


class RecordingNotifier(Notifier):
    """Keeps every message; used by tests and headless runs."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    @property
    def errors(self) -> List[str]:
        return [m for level, m in self.messages if level == "error"]


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LoadedArrangement:
    pieces: Tuple[Piece, ...]
    saved_ids: Tuple[str, ...]


class ArrangementLoader:
    """Scheduled pieces ordered by the saved arrangement, if any."""

    def __init__(self, client: InspectionApiClient, arrangement_svc: Optional[ArrangementService] = None):
        self._client = client
        self._arrangements = arrangement_svc or ArrangementService()

    async def load(
        self, workspace_id: str, form_id: str, inspection_type: InspectionType
    ) -> LoadedArrangement:
        """
        Raises NotFoundError for an unknown workspace/form, EmptyResultError
        when nothing is scheduled, and InspectionClientError when the pieces
        cannot be fetched.  A failing arrangement fetch is not fatal: the
        pieces are returned in scheduled order.
        """
        pieces = await self._client.list_pieces(workspace_id, form_id, inspection_type)
        if not pieces:
            raise EmptyResultError(
                f"No pieces scheduled for {inspection_type.value} inspection "
                f"on form {form_id}."
            )
        try:
            arrangement = await self._client.get_arrangement(
                workspace_id, form_id, inspection_type
            )
            saved_ids = arrangement.piece_ids
        except InspectionClientError as exc:
            LOGGER.warning(
                "Arrangement unavailable, using scheduled order",
                extra={"workspace_id": workspace_id, "form_id": form_id, "error": str(exc)},
            )
            saved_ids = ()
        ordered = self._arrangements.apply_arrangement(pieces, saved_ids)
        return LoadedArrangement(pieces=tuple(ordered), saved_ids=tuple(saved_ids))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

class PieceInspectionSession:
    """
    State behind one inspection screen: the arranged pieces, the
    navigation cursor and the inspection points of the current page.

    Every network result is checked against what is on screen when it
    arrives.  Reorders and point refreshes carry a sequence number so a
    response that was overtaken by a newer request is never applied.
    """

    def __init__(
        self,
        client: InspectionApiClient,
        workspace_id: str,
        form_id: str,
        inspection_type: InspectionType,
        notifier: Optional[Notifier] = None,
        swipe_mapping: Optional[Dict[SwipeDirection, NavigationAction]] = None,
    ):
        self.client = client
        self.workspace_id = workspace_id
        self.form_id = form_id
        self.inspection_type = inspection_type
        self.notifier = notifier or LoggingNotifier()
        self.swipe_mapping = swipe_mapping or DEFAULT_SWIPE_MAPPING

        self.view_state = ViewState.LOADING
        self.message = ""
        self.pieces: List[Piece] = []
        self.points: List[InspectionPoint] = []
        self.navigator = Navigator()

        self._loader = ArrangementLoader(client)
        self._arrangements = ArrangementService()
        self._saved_order: Tuple[str, ...] = ()
        self._reorder_seq = 0
        self._saved_seq = 0
        self._shown_seq = 0
        self._points_seq = 0
        self._points_target: Tuple[Optional[str], Optional[str]] = (None, None)

    # -- state --------------------------------------------------------------

    @property
    def cursor(self) -> NavigationCursor:
        return self.navigator.cursor

    @property
    def current_piece(self) -> Optional[Piece]:
        if not self.pieces:
            return None
        return self.pieces[self.cursor.piece_index]

    @property
    def current_page(self) -> Optional[DrawingPage]:
        piece = self.current_piece
        if piece is None or not piece.pages:
            return None
        return piece.pages[self.cursor.page_index]

    @property
    def order(self) -> List[str]:
        return [p.id for p in self.pieces]

    @property
    def saved_order(self) -> Tuple[str, ...]:
        return self._saved_order

    def _target(self) -> Tuple[Optional[str], Optional[str]]:
        piece, page = self.current_piece, self.current_page
        return (piece.id if piece else None, page.id if page else None)

    def _set_view(self, state: ViewState, message: str = "") -> None:
        self.view_state = state
        self.message = message

    def _show(self, pieces: Sequence[Piece], viewing_id: Optional[str]) -> None:
        """Display `pieces` with the cursor following `viewing_id`."""
        before = self.cursor
        self.pieces = list(pieces)
        ids = self.order
        piece_index = ids.index(viewing_id) if viewing_id in ids else 0
        page_index = before.page_index if piece_index == before.piece_index else 0
        self.navigator.reset([p.page_count for p in self.pieces], piece_index, page_index)

    # -- loading ------------------------------------------------------------

    async def load(self) -> bool:
        self._set_view(ViewState.LOADING)
        self.points = []
        self._points_target = (None, None)
        try:
            loaded = await self._loader.load(self.workspace_id, self.form_id, self.inspection_type)
        except NotFoundError as exc:
            self.pieces = []
            self.navigator.reset(())
            self._set_view(ViewState.NOT_FOUND, exc.message)
            return False
        except EmptyResultError as exc:
            self.pieces = []
            self.navigator.reset(())
            self._set_view(ViewState.EMPTY, str(exc))
            return False
        except InspectionClientError as exc:
            LOGGER.error(
                "Failed to load pieces",
                extra={"workspace_id": self.workspace_id, "form_id": self.form_id},
                exc_info=True,
            )
            self._set_view(ViewState.ERROR, exc.message)
            return False

        self.pieces = list(loaded.pieces)
        self._saved_order = tuple(self.order)
        self._reorder_seq += 1
        self._saved_seq = self._shown_seq = self._reorder_seq
        self.navigator.reset([p.page_count for p in self.pieces])
        self._set_view(ViewState.READY)
        LOGGER.info(
            "Inspection session loaded",
            extra={
                "workspace_id": self.workspace_id,
                "form_id": self.form_id,
                "inspection_type": self.inspection_type.value,
                "piece_count": len(self.pieces),
            },
        )
        await self.refresh_points()
        return True

    # -- arrangement --------------------------------------------------------

    async def reorder(self, source_index: int, dest_index: int) -> bool:
        """
        Move a piece and persist the new order.  If the save fails and no
        newer reorder was made meanwhile, the last saved order is restored;
        either way an error toast is shown.  A newer pending save carries
        the full order, so an overtaken failure leaves the display alone.
        """
        if self.view_state != ViewState.READY or source_index == dest_index:
            return False
        try:
            reordered = self._arrangements.reorder(self.pieces, source_index, dest_index)
        except ValueError:
            LOGGER.debug(
                "Ignoring out-of-range reorder",
                extra={"source_index": source_index, "dest_index": dest_index},
            )
            return False

        self._reorder_seq += 1
        seq = self._reorder_seq
        before = self._target()
        self._show(reordered, before[0])
        self._shown_seq = seq
        piece_ids = [p.id for p in reordered]
        try:
            await self.client.save_arrangement(
                self.workspace_id, self.form_id, self.inspection_type, piece_ids
            )
        except InspectionClientError as exc:
            self.notifier.error(f"Could not save the piece order: {exc.message}")
            if seq != self._reorder_seq:
                LOGGER.warning(
                    "Overtaken arrangement save failed",
                    extra={"form_id": self.form_id, "error": exc.message},
                )
                return False
            LOGGER.warning(
                "Arrangement save failed, reverting",
                extra={"form_id": self.form_id, "error": exc.message},
            )
            restored = self._arrangements.apply_arrangement(self.pieces, self._saved_order)
            self._show(restored, self._target()[0])
            self._shown_seq = self._saved_seq
            if self._target() != before:
                await self.refresh_points()
            return False

        if seq > self._saved_seq:
            self._saved_order = tuple(piece_ids)
            self._saved_seq = seq
            if self._shown_seq < seq:
                # a newer reorder failed and reverted to an order older than this one
                self._show(
                    self._arrangements.apply_arrangement(self.pieces, piece_ids),
                    self._target()[0],
                )
                self._shown_seq = seq
        if self._target() != before:
            await self.refresh_points()
        return True

    # -- navigation ---------------------------------------------------------

    async def _navigate(self, moved: bool) -> bool:
        if moved:
            await self.refresh_points()
        return moved

    async def next_piece(self) -> bool:
        return await self._navigate(self.navigator.next_piece())

    async def previous_piece(self) -> bool:
        return await self._navigate(self.navigator.previous_piece())

    async def next_page(self) -> bool:
        return await self._navigate(self.navigator.next_page())

    async def previous_page(self) -> bool:
        return await self._navigate(self.navigator.previous_page())

    async def select_piece(self, piece_index: int) -> bool:
        return await self._navigate(self.navigator.go_to_piece(piece_index))

    async def swipe(self, direction: SwipeDirection) -> bool:
        return await self._navigate(self.navigator.swipe(direction, self.swipe_mapping))

    # -- inspection points --------------------------------------------------

    async def refresh_points(self) -> bool:
        """
        Reload the points of the current page.  A response is dropped when
        the page changed or a newer refresh started; points marked while it
        was in flight are kept.
        """
        piece, page = self.current_piece, self.current_page
        self._points_seq += 1
        seq = self._points_seq
        target = (piece.id if piece else None, page.id if page else None)
        if self._points_target != target:
            self.points = []
            self._points_target = target
        if piece is None or page is None:
            return False
        try:
            points = await self.client.list_points(piece.id, page.id, self.inspection_type)
        except InspectionClientError as exc:
            if self._target() == target:
                self.notifier.error(f"Could not load inspection points: {exc.message}")
            return False
        if self._target() != target or seq != self._points_seq:
            LOGGER.debug("Discarding stale points response", extra={"piece_id": piece.id, "page_id": page.id})
            return False
        fetched = {p.id for p in points}
        self.points = points + [p for p in self.points if p.id not in fetched]
        return True

    async def mark_point(
        self,
        client_x: float,
        client_y: float,
        box: ViewportBox,
        notes: str = "",
    ) -> Optional[InspectionPoint]:
        """Create a point where the drawing was clicked."""
        piece, page = self.current_piece, self.current_page
        if piece is None or page is None:
            return None
        try:
            x, y = box.to_percent(client_x, client_y)
        except ValueError as exc:
            LOGGER.debug("Ignoring click on an unrendered drawing", extra={"error": str(exc)})
            return None
        target = (piece.id, page.id)
        try:
            point = await self.client.create_point(
                piece.id, page.id, self.inspection_type, x, y, notes
            )
        except InspectionClientError as exc:
            self.notifier.error(f"Could not save the inspection point: {exc.message}")
            return None
        if self._target() == target and self._points_target == target:
            self.points = [*self.points, point]
        return point

    # -- completion ---------------------------------------------------------

    async def complete_inspection(self, decision: InspectionStatus, notes: str = "") -> bool:
        """
        Approve or reject the current piece.  On success the cursor moves to
        the next piece, unless the piece is last or the technician already
        moved away while the request was in flight.
        """
        piece = self.current_piece
        if piece is None:
            return False
        if decision not in (InspectionStatus.APPROVED, InspectionStatus.REJECTED):
            self.notifier.error("An inspection can only be approved or rejected.")
            return False
        try:
            updated = await self.client.complete_inspection(
                piece.id, self.inspection_type, decision, notes
            )
        except InspectionClientError as exc:
            LOGGER.warning(
                "Inspection completion failed",
                extra={"piece_id": piece.id, "error": exc.message},
            )
            self.notifier.error(f"Could not complete inspection of {piece.piece_number}: {exc.message}")
            return False

        self._show(
            [updated if p.id == updated.id else p for p in self.pieces],
            self._target()[0],
        )
        verb = "approved" if decision == InspectionStatus.APPROVED else "rejected"
        self.notifier.info(f"{self.inspection_type.value} inspection of {piece.piece_number} {verb}.")
        current = self.current_piece
        if current is not None and current.id == piece.id:
            await self.next_piece()
        return True

    async def recommendations(self) -> Optional[InspectionRecommendation]:
        piece = self.current_piece
        if piece is None:
            return None
        try:
            return await self.client.get_recommendations(piece.id, self.inspection_type)
        except InspectionClientError as exc:
            self.notifier.error(f"Could not load recommendations: {exc.message}")
            return None
