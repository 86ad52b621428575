"""Tests for the domain services."""

import pytest

from infrastructure import build_piece
from model import InspectionStatus, InspectionType, PieceStatus
from service import (
    DEFAULT_SWIPE_MAPPING,
    AlreadyDecidedError,
    ArrangementService,
    CompletionService,
    EligibilityService,
    NavigationAction,
    NavigationCursor,
    Navigator,
    SchedulingService,
    StaticRecommendationProvider,
    SwipeDirection,
    ValidationError,
    ViewportBox,
)


def _piece(piece_id, status=PieceStatus.IN_PRODUCTION, order=0, pages=1):
    return build_piece(
        piece_id, "W1", "F1", piece_id, page_count=pages, production_order=order, status=status
    )


class TestSchedulingService:
    """Which pieces show up on an inspection list."""

    def test_filters_by_status_and_sorts_by_production_order(self):
        pieces = [
            _piece("P3", order=3),
            _piece("P1", order=1),
            _piece("SHIPPED", status=PieceStatus.SHIPPED, order=0),
            _piece("P2", order=2, status=PieceStatus.SCHEDULED),
        ]
        result = SchedulingService().scheduled_pieces(pieces, InspectionType.PRE_POUR)
        assert [p.id for p in result] == ["P1", "P2", "P3"]

    def test_post_pour_needs_a_poured_piece(self):
        svc = SchedulingService()
        assert not svc.is_scheduled(_piece("P1"), InspectionType.POST_POUR)
        assert svc.is_scheduled(
            _piece("P1", status=PieceStatus.READY_FOR_POUR), InspectionType.POST_POUR
        )


class TestArrangementService:
    """Saved order application, reorder and validation."""

    def setup_method(self):
        self.svc = ArrangementService()
        self.scheduled = [_piece("P1"), _piece("P2"), _piece("P3"), _piece("P4")]

    def _ids(self, pieces):
        return [p.id for p in pieces]

    def test_no_saved_arrangement_keeps_scheduled_order(self):
        assert self._ids(self.svc.apply_arrangement(self.scheduled, [])) == ["P1", "P2", "P3", "P4"]

    def test_saved_ids_first_then_unsaved_in_original_order(self):
        result = self.svc.apply_arrangement(self.scheduled, ["P3", "P1"])
        assert self._ids(result) == ["P3", "P1", "P2", "P4"]

    def test_result_is_a_permutation_of_scheduled(self):
        result = self.svc.apply_arrangement(self.scheduled, ["GONE", "P2", "P2", "P4", "X"])
        assert self._ids(result) == ["P2", "P4", "P1", "P3"]
        assert sorted(self._ids(result)) == sorted(self._ids(self.scheduled))

    def test_reorder_moves_one_item_and_keeps_the_rest_stable(self):
        assert self.svc.reorder(["a", "b", "c", "d"], 0, 2) == ["b", "c", "a", "d"]
        assert self.svc.reorder(["a", "b", "c", "d"], 3, 0) == ["d", "a", "b", "c"]

    def test_reorder_does_not_mutate_input(self):
        items = ["a", "b", "c"]
        self.svc.reorder(items, 0, 1)
        assert items == ["a", "b", "c"]

    @pytest.mark.parametrize("source,dest", [(-1, 0), (0, 3), (5, 1)])
    def test_reorder_out_of_range(self, source, dest):
        with pytest.raises(ValueError):
            self.svc.reorder(["a", "b", "c"], source, dest)

    def test_validate_rejects_duplicates(self):
        with pytest.raises(ValueError, match="duplicate"):
            self.svc.validate_arrangement(["P1", "P1"], ["P1", "P2"])

    def test_validate_rejects_unknown_ids(self):
        with pytest.raises(ValueError, match="unknown"):
            self.svc.validate_arrangement(["P1", "P9"], ["P1", "P2"])


class TestNavigator:
    """Cursor over the piece × page grid."""

    def test_page_resets_when_piece_changes(self):
        nav = Navigator([3, 2])
        assert nav.next_page() and nav.next_page()
        assert nav.cursor == NavigationCursor(0, 2)
        assert nav.next_piece()
        assert nav.cursor == NavigationCursor(1, 0)

    def test_clamped_at_both_ends_without_wraparound(self):
        nav = Navigator([2, 1])
        assert nav.previous_piece() is False
        assert nav.previous_page() is False
        nav.next_piece()
        assert nav.next_piece() is False
        assert nav.next_page() is False
        assert nav.cursor == NavigationCursor(1, 0)

    def test_next_piece_on_last_piece_keeps_page(self):
        nav = Navigator([1, 3], NavigationCursor(1, 2))
        assert nav.next_piece() is False
        assert nav.cursor == NavigationCursor(1, 2)

    def test_page_bounds_follow_the_current_piece(self):
        nav = Navigator([1, 4])
        assert nav.next_page() is False
        nav.next_piece()
        for _ in range(10):
            nav.next_page()
        assert nav.cursor.page_index == 3

    def test_random_walk_stays_in_bounds(self):
        counts = [2, 1, 4, 3]
        nav = Navigator(counts)
        moves = [nav.next_piece, nav.next_page, nav.previous_page, nav.next_page,
                 nav.next_piece, nav.next_page, nav.next_page, nav.next_page,
                 nav.next_page, nav.previous_piece, nav.next_piece, nav.next_piece,
                 nav.next_piece, nav.previous_page]
        for move in moves:
            piece_before = nav.cursor.piece_index
            move()
            assert 0 <= nav.cursor.piece_index < len(counts)
            assert 0 <= nav.cursor.page_index < counts[nav.cursor.piece_index]
            if nav.cursor.piece_index != piece_before:
                assert nav.cursor.page_index == 0

    def test_go_to_piece_lands_on_first_page(self):
        nav = Navigator([2, 2, 2], NavigationCursor(0, 1))
        assert nav.go_to_piece(2)
        assert nav.cursor == NavigationCursor(2, 0)
        nav.next_page()
        assert nav.go_to_piece(2)
        assert nav.cursor == NavigationCursor(2, 0)

    def test_go_to_piece_out_of_range_is_clamped(self):
        nav = Navigator([1, 1, 1])
        nav.go_to_piece(99)
        assert nav.cursor.piece_index == 2

    def test_piece_without_pages_has_page_index_zero(self):
        nav = Navigator([0, 2])
        assert nav.next_page() is False
        assert nav.cursor == NavigationCursor(0, 0)

    def test_empty_grid(self):
        nav = Navigator()
        assert nav.piece_count == 0
        assert nav.next_piece() is False
        assert nav.cursor == NavigationCursor(0, 0)

    def test_default_swipe_mapping(self):
        nav = Navigator([2, 2])
        assert nav.swipe(SwipeDirection.UP)
        assert nav.cursor == NavigationCursor(0, 1)
        assert nav.swipe(SwipeDirection.DOWN)
        assert nav.cursor == NavigationCursor(0, 0)
        assert nav.swipe(SwipeDirection.LEFT)
        assert nav.cursor == NavigationCursor(1, 0)
        assert nav.swipe(SwipeDirection.RIGHT)
        assert nav.cursor == NavigationCursor(0, 0)

    def test_custom_swipe_mapping(self):
        inverted = dict(DEFAULT_SWIPE_MAPPING)
        inverted[SwipeDirection.UP] = NavigationAction.PREVIOUS_PAGE
        inverted[SwipeDirection.DOWN] = NavigationAction.NEXT_PAGE
        nav = Navigator([3])
        assert nav.swipe(SwipeDirection.DOWN, inverted)
        assert nav.cursor.page_index == 1

    def test_reset_reclamps_cursor(self):
        nav = Navigator([3, 3], NavigationCursor(1, 2))
        nav.reset([2], piece_index=1, page_index=2)
        assert nav.cursor == NavigationCursor(0, 1)

    def test_checked_cursor_raises_out_of_bounds(self):
        with pytest.raises(ValidationError):
            NavigationCursor.checked(2, 0, [1, 1])
        with pytest.raises(ValidationError):
            NavigationCursor.checked(0, 1, [1, 1])


class TestViewportBox:
    """Click position → percentage coordinates."""

    @pytest.mark.parametrize(
        "box",
        [
            ViewportBox(left=0, top=0, width=800, height=600),
            ViewportBox(left=120, top=45, width=1920, height=1080),
            ViewportBox(left=10.5, top=3.25, width=333, height=77),
        ],
    )
    def test_scale_invariance(self, box):
        x, y = box.to_percent(box.left + 0.25 * box.width, box.top + 0.5 * box.height)
        assert x == pytest.approx(25.0)
        assert y == pytest.approx(50.0)

    def test_clicks_outside_are_clamped(self):
        box = ViewportBox(left=100, top=100, width=200, height=200)
        assert box.to_percent(50, 400) == (0.0, 100.0)

    def test_zero_sized_box(self):
        with pytest.raises(ValueError):
            ViewportBox(0, 0, 0, 100).to_percent(0, 0)


class TestCompletionService:
    """Approve / reject transitions."""

    def setup_method(self):
        self.svc = CompletionService()

    @pytest.mark.parametrize(
        "decision,expected",
        [
            (InspectionStatus.APPROVED, PieceStatus.READY_FOR_POUR),
            (InspectionStatus.REJECTED, PieceStatus.INSPECTION_FAILED),
        ],
    )
    def test_pre_pour(self, decision, expected):
        piece, record = self.svc.complete(
            _piece("P1"), InspectionType.PRE_POUR, decision, notes="ok", completed_by_id="u1"
        )
        assert piece.status == expected
        assert piece.inspection_status(InspectionType.PRE_POUR) == decision
        assert record.status == decision
        assert record.completed_by_id == "u1"
        assert record.completed_at == piece.updated_at

    def test_post_pour_approval_after_pre_pour(self):
        piece, _ = self.svc.complete(_piece("P1"), InspectionType.PRE_POUR, InspectionStatus.APPROVED)
        piece, _ = self.svc.complete(piece, InspectionType.POST_POUR, InspectionStatus.APPROVED)
        assert piece.status == PieceStatus.READY_FOR_YARD

    def test_post_pour_rejection_requires_rework(self):
        piece, _ = self.svc.complete(_piece("P1"), InspectionType.PRE_POUR, InspectionStatus.APPROVED)
        piece, _ = self.svc.complete(piece, InspectionType.POST_POUR, InspectionStatus.REJECTED)
        assert piece.status == PieceStatus.REWORK_REQUIRED

    def test_post_pour_without_pre_pour_approval(self):
        with pytest.raises(ValueError, match="PRE_POUR"):
            self.svc.complete(_piece("P1"), InspectionType.POST_POUR, InspectionStatus.APPROVED)

    def test_decision_is_terminal(self):
        piece, _ = self.svc.complete(_piece("P1"), InspectionType.PRE_POUR, InspectionStatus.REJECTED)
        with pytest.raises(AlreadyDecidedError):
            self.svc.complete(piece, InspectionType.PRE_POUR, InspectionStatus.APPROVED)

    def test_pending_is_not_a_decision(self):
        with pytest.raises(ValueError):
            self.svc.complete(_piece("P1"), InspectionType.PRE_POUR, InspectionStatus.PENDING)

    def test_original_piece_is_unchanged(self):
        original = _piece("P1")
        self.svc.complete(original, InspectionType.PRE_POUR, InspectionStatus.APPROVED)
        assert original.inspection_status(InspectionType.PRE_POUR) == InspectionStatus.PENDING
        assert original.status == PieceStatus.IN_PRODUCTION


class TestEligibilityService:
    """What QC outcomes unlock downstream."""

    def test_nothing_before_inspection(self):
        e = EligibilityService().evaluate(_piece("P1"))
        assert (e.pour_eligible, e.yard_eligible, e.shipping_eligible) == (False, False, False)

    def test_pre_pour_approval_unlocks_pour(self):
        piece, _ = CompletionService().complete(
            _piece("P1"), InspectionType.PRE_POUR, InspectionStatus.APPROVED
        )
        e = EligibilityService().evaluate(piece)
        assert e.pour_eligible and not e.yard_eligible

    def test_post_pour_approval_unlocks_yard_and_shipping(self):
        svc = CompletionService()
        piece, _ = svc.complete(_piece("P1"), InspectionType.PRE_POUR, InspectionStatus.APPROVED)
        piece, _ = svc.complete(piece, InspectionType.POST_POUR, InspectionStatus.APPROVED)
        e = EligibilityService().evaluate(piece)
        assert not e.pour_eligible
        assert e.yard_eligible and e.shipping_eligible


def test_static_recommendations_per_type():
    provider = StaticRecommendationProvider()
    pre = provider.recommend(_piece("P1"), InspectionType.PRE_POUR)
    post = provider.recommend(_piece("P1"), InspectionType.POST_POUR)
    assert pre.piece_id == "P1"
    assert pre.suggested_checks and post.suggested_checks
    assert pre.suggested_checks != post.suggested_checks
