"""Tests for the inspection REST endpoints."""

import pytest

from api import app, get_recommendation_provider
from model import InspectionRecommendation, InspectionType, PieceStatus
from service import RecommendationProvider

BASE = "/api/v1/quality-control/inspection"


@pytest.fixture
def form(seed_form):
    """W1/F1 with pieces P1 (2 pages), P2 (1 page), P3 (3 pages)."""
    return seed_form("W1", "F1", ["P1", "P2", "P3"], [2, 1, 3])


def _pieces_params(type_="PRE_POUR", workspace_id="W1", form_id="F1"):
    return {"workspace_id": workspace_id, "form_id": form_id, "type": type_}


class TestHealth:
    def test_health(self, test_client):
        response = test_client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestPiecesEndpoints:
    """GET /pieces and per-piece reads."""

    def test_lists_scheduled_pieces_in_production_order(self, test_client, form):
        response = test_client.get(f"{BASE}/pieces", params=_pieces_params())

        assert response.status_code == 200
        data = response.json()["data"]
        assert [p["id"] for p in data] == ["P1", "P2", "P3"]
        assert data[0]["page_count"] == 2
        assert [pg["id"] for pg in data[0]["pages"]] == ["P1-pg1", "P1-pg2"]
        assert data[0]["inspection_status"] == "PENDING"
        assert data[0]["inspection_points"] == []

    def test_nothing_scheduled_is_an_empty_list(self, test_client, form):
        response = test_client.get(f"{BASE}/pieces", params=_pieces_params("POST_POUR"))

        assert response.status_code == 200
        assert response.json()["data"] == []

    def test_unknown_workspace_is_404(self, test_client, form):
        response = test_client.get(f"{BASE}/pieces", params=_pieces_params(workspace_id="W9"))

        assert response.status_code == 404
        assert "W9" in response.json()["detail"]

    def test_form_of_another_workspace_is_404(self, test_client, form, seed_form):
        seed_form("W2", "F2")
        response = test_client.get(
            f"{BASE}/pieces", params=_pieces_params(workspace_id="W2", form_id="F1")
        )
        assert response.status_code == 404

    def test_invalid_type_is_422(self, test_client, form):
        response = test_client.get(f"{BASE}/pieces", params=_pieces_params("MID_POUR"))
        assert response.status_code == 422

    def test_get_piece(self, test_client, form):
        response = test_client.get(f"{BASE}/pieces/P3", params={"type": "PRE_POUR"})

        assert response.status_code == 200
        assert response.json()["data"]["page_count"] == 3

    def test_get_unknown_piece(self, test_client, form):
        assert test_client.get(f"{BASE}/pieces/NOPE").status_code == 404

    def test_recommendations_use_the_injected_provider(self, test_client, form):
        class FixedProvider(RecommendationProvider):
            def recommend(self, piece, inspection_type):
                return InspectionRecommendation(
                    piece_id=piece.id,
                    inspection_type=inspection_type,
                    critical_areas=("Corbel",),
                    suggested_checks=("Check corbel bearing plate",),
                )

        app.dependency_overrides[get_recommendation_provider] = lambda: FixedProvider()
        response = test_client.get(f"{BASE}/pieces/P1/recommendations", params={"type": "POST_POUR"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["type"] == "POST_POUR"
        assert data["critical_areas"] == ["Corbel"]


class TestArrangementEndpoints:
    """GET / POST /arrangement."""

    def test_absent_arrangement_is_empty(self, test_client, form):
        response = test_client.get(f"{BASE}/arrangement", params=_pieces_params())

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["arrangement"] == []
        assert data["saved_at"] is None

    def test_save_then_get_round_trip(self, test_client, form):
        body = {**_pieces_params(), "arrangement": ["P2", "P1", "P3"]}
        saved = test_client.post(f"{BASE}/arrangement", json=body)
        assert saved.status_code == 200

        response = test_client.get(f"{BASE}/arrangement", params=_pieces_params())
        assert response.json()["data"]["arrangement"] == ["P2", "P1", "P3"]

    def test_save_replaces_previous_arrangement(self, test_client, form):
        test_client.post(f"{BASE}/arrangement", json={**_pieces_params(), "arrangement": ["P3", "P2", "P1"]})
        test_client.post(f"{BASE}/arrangement", json={**_pieces_params(), "arrangement": ["P2"]})

        response = test_client.get(f"{BASE}/arrangement", params=_pieces_params())
        assert response.json()["data"]["arrangement"] == ["P2"]

    def test_arrangements_are_kept_per_type(self, test_client, form):
        test_client.post(f"{BASE}/arrangement", json={**_pieces_params(), "arrangement": ["P3"]})

        response = test_client.get(f"{BASE}/arrangement", params=_pieces_params("POST_POUR"))
        assert response.json()["data"]["arrangement"] == []

    def test_duplicate_ids_are_rejected(self, test_client, form):
        response = test_client.post(
            f"{BASE}/arrangement", json={**_pieces_params(), "arrangement": ["P1", "P1"]}
        )
        assert response.status_code == 422

    def test_unknown_piece_is_rejected(self, test_client, form):
        response = test_client.post(
            f"{BASE}/arrangement", json={**_pieces_params(), "arrangement": ["P1", "ZZ"]}
        )
        assert response.status_code == 422
        assert "ZZ" in response.json()["detail"]


class TestPointEndpoints:
    """Inspection points on drawing pages."""

    def _create(self, client, **overrides):
        body = {"piece_id": "P1", "page_id": "P1-pg1", "x": 25.0, "y": 50.0, "type": "PRE_POUR"}
        body.update(overrides)
        return client.post(f"{BASE}/points", json=body)

    def test_create_and_list(self, test_client, form):
        created = self._create(test_client, notes="Cover too thin")
        assert created.status_code == 201
        point = created.json()["data"]
        assert point["status"] == "PENDING"
        assert point["created_by_id"] is not None

        self._create(test_client, page_id="P1-pg2", x=10, y=10)

        response = test_client.get(f"{BASE}/points", params={"piece_id": "P1", "page_id": "P1-pg1"})
        data = response.json()["data"]
        assert [p["id"] for p in data] == [point["id"]]
        assert data[0]["x"] == 25.0 and data[0]["y"] == 50.0

    def test_points_are_embedded_in_piece_list_per_type(self, test_client, form):
        self._create(test_client)
        self._create(test_client, type="POST_POUR")

        pre = test_client.get(f"{BASE}/pieces", params=_pieces_params()).json()["data"]
        assert len(pre[0]["inspection_points"]) == 1
        assert pre[0]["inspection_points"][0]["type"] == "PRE_POUR"

    @pytest.mark.parametrize("x,y", [(-0.1, 10), (10, 100.5)])
    def test_coordinates_outside_drawing_are_422(self, test_client, form, x, y):
        assert self._create(test_client, x=x, y=y).status_code == 422

    def test_page_of_another_piece_is_404(self, test_client, form):
        assert self._create(test_client, page_id="P2-pg1").status_code == 404

    def test_update_and_delete(self, test_client, form):
        point_id = self._create(test_client).json()["data"]["id"]

        updated = test_client.put(f"{BASE}/points/{point_id}", json={"status": "FAILED", "notes": "Honeycombing"})
        assert updated.status_code == 200
        assert updated.json()["data"]["status"] == "FAILED"
        assert updated.json()["data"]["notes"] == "Honeycombing"

        assert test_client.delete(f"{BASE}/points/{point_id}").status_code == 204
        assert test_client.delete(f"{BASE}/points/{point_id}").status_code == 404


class TestCompleteEndpoint:
    """POST /complete and its downstream effects."""

    def _complete(self, client, piece_id="P2", type_="PRE_POUR", **body):
        payload = {"piece_id": piece_id, "type": type_, "status": "APPROVED"}
        payload.update(body)
        return client.post(f"{BASE}/complete", json=payload)

    def test_approve_pre_pour(self, test_client, form):
        response = self._complete(test_client)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["qc_status"]["PRE_POUR"] == "APPROVED"
        assert data["inspection_status"] == "APPROVED"
        assert data["status"] == PieceStatus.READY_FOR_POUR.value

        eligibility = test_client.get(f"{BASE}/pieces/P2/eligibility").json()["data"]
        assert eligibility["pour_eligible"] is True
        assert eligibility["yard_eligible"] is False

    def test_boolean_approved_field(self, test_client, form):
        response = self._complete(test_client, status=None, approved=False)

        assert response.status_code == 200
        assert response.json()["data"]["status"] == PieceStatus.INSPECTION_FAILED.value

    def test_pending_is_not_accepted(self, test_client, form):
        assert self._complete(test_client, status="PENDING").status_code == 422

    def test_missing_decision(self, test_client, form):
        assert self._complete(test_client, status=None).status_code == 422

    def test_second_decision_is_a_conflict(self, test_client, form):
        self._complete(test_client)
        response = self._complete(test_client, status="REJECTED")
        assert response.status_code == 409

    def test_post_pour_requires_approved_pre_pour(self, test_client, form):
        response = self._complete(test_client, type_="POST_POUR")
        assert response.status_code == 422

    def test_post_pour_approval_unlocks_yard_and_shipping(self, test_client, form):
        self._complete(test_client)
        response = self._complete(test_client, type_="POST_POUR")
        assert response.json()["data"]["status"] == PieceStatus.READY_FOR_YARD.value

        eligibility = test_client.get(f"{BASE}/pieces/P2/eligibility").json()["data"]
        assert eligibility["yard_eligible"] is True
        assert eligibility["shipping_eligible"] is True

    def test_history_newest_first(self, test_client, form):
        self._complete(test_client, notes="Rebar ok")
        self._complete(test_client, type_="POST_POUR", status="REJECTED", notes="Spalled corner")

        history = test_client.get(f"{BASE}/pieces/P2/history").json()["data"]
        assert [h["type"] for h in history] == [InspectionType.POST_POUR.value, InspectionType.PRE_POUR.value]
        assert history[0]["notes"] == "Spalled corner"

    def test_unknown_piece(self, test_client, form):
        assert self._complete(test_client, piece_id="NOPE").status_code == 404
