"""
client.py

Async REST client for the piece-inspection API.

Every endpoint of api.py has one coroutine here.  Payloads come back as
domain objects decoded with the model.py ``*_from_dict`` helpers.

Failure shapes
--------------
Both a non-2xx status and a 2xx body of the form
``{"success": false, "error": "..."}`` are failures:

  404                      → NotFoundError
  any other failure, write → PersistenceError
  any other failure, read  → InspectionClientError

There are no retries; the caller decides whether to re-trigger the action.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import httpx

from config import settings
from log import get_logger
from model import (
    Arrangement,
    InspectionPoint,
    InspectionRecommendation,
    InspectionRecord,
    InspectionStatus,
    InspectionType,
    Piece,
    PointStatus,
    arrangement_from_dict,
    piece_from_dict,
    point_from_dict,
    recommendation_from_dict,
    record_from_dict,
)

LOGGER = get_logger(__name__)

INSPECTION_PATH = "/quality-control/inspection"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class InspectionClientError(Exception):
    """A request to the inspection API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(InspectionClientError):
    """Unknown workspace, form, piece or point."""


class PersistenceError(InspectionClientError):
    """A write (arrangement save, point create/update/delete, completion) failed."""


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("detail") or body.get("error") or body)
    return str(body)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class InspectionApiClient:
    """
    Thin async wrapper over the inspection endpoints.

    Pass ``http_client`` to reuse a configured ``httpx.AsyncClient`` (its
    ``base_url`` must point at the API root); the client then does not own
    and will not close it.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.http_timeout,
        )
        self._prefix = settings.api_v1_prefix + INSPECTION_PATH

    async def __aenter__(self) -> "InspectionApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        write: bool = False,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        error_cls = PersistenceError if write else InspectionClientError
        url = self._prefix + path
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await self._http.request(method, url, params=params, json=json)
        except httpx.TimeoutException as exc:
            LOGGER.error("Inspection API timeout", extra={"method": method, "url": url})
            raise error_cls(f"Request timed out: {method} {url}") from exc
        except httpx.RequestError as exc:
            LOGGER.error(
                "Inspection API request failed",
                extra={"method": method, "url": url, "error": str(exc)},
            )
            raise error_cls(f"Request failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(_error_text(response), status_code=404)
        if response.is_error:
            LOGGER.warning(
                "Inspection API error response",
                extra={"method": method, "url": url, "status_code": response.status_code},
            )
            raise error_cls(_error_text(response), status_code=response.status_code)
        if response.status_code == 204 or not response.content:
            return None

        try:
            body = response.json()
        except ValueError as exc:
            raise error_cls("Response body is not valid JSON", response.status_code) from exc
        if isinstance(body, dict) and body.get("success") is False:
            LOGGER.warning(
                "Inspection API reported failure",
                extra={"method": method, "url": url, "error": body.get("error")},
            )
            raise error_cls(str(body.get("error") or "Request failed"), response.status_code)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    # -- pieces -------------------------------------------------------------

    async def list_pieces(
        self, workspace_id: str, form_id: str, inspection_type: InspectionType
    ) -> List[Piece]:
        data = await self._request(
            "GET",
            "/pieces",
            params={
                "workspace_id": workspace_id,
                "form_id": form_id,
                "type": inspection_type.value,
            },
        )
        return [piece_from_dict(p) for p in data or []]

    async def get_piece(
        self, piece_id: str, inspection_type: Optional[InspectionType] = None
    ) -> Piece:
        data = await self._request(
            "GET",
            f"/pieces/{piece_id}",
            params={"type": inspection_type.value if inspection_type else None},
        )
        return piece_from_dict(data)

    async def get_eligibility(self, piece_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/pieces/{piece_id}/eligibility")

    async def get_history(self, piece_id: str) -> List[InspectionRecord]:
        data = await self._request("GET", f"/pieces/{piece_id}/history")
        return [record_from_dict(r) for r in data or []]

    async def get_recommendations(
        self, piece_id: str, inspection_type: InspectionType
    ) -> InspectionRecommendation:
        data = await self._request(
            "GET",
            f"/pieces/{piece_id}/recommendations",
            params={"type": inspection_type.value},
        )
        return recommendation_from_dict(data)

    # -- arrangement --------------------------------------------------------

    async def get_arrangement(
        self, workspace_id: str, form_id: str, inspection_type: InspectionType
    ) -> Arrangement:
        data = await self._request(
            "GET",
            "/arrangement",
            params={
                "workspace_id": workspace_id,
                "form_id": form_id,
                "type": inspection_type.value,
            },
        )
        # an absent arrangement is the same as an empty one
        data = dict(data or {})
        data.setdefault("workspace_id", workspace_id)
        data.setdefault("form_id", form_id)
        data.setdefault("type", inspection_type.value)
        return arrangement_from_dict(data)

    async def save_arrangement(
        self,
        workspace_id: str,
        form_id: str,
        inspection_type: InspectionType,
        piece_ids: Sequence[str],
    ) -> Arrangement:
        data = await self._request(
            "POST",
            "/arrangement",
            write=True,
            json={
                "workspace_id": workspace_id,
                "form_id": form_id,
                "type": inspection_type.value,
                "arrangement": list(piece_ids),
            },
        )
        return arrangement_from_dict(data)

    # -- inspection points --------------------------------------------------

    async def list_points(
        self,
        piece_id: str,
        page_id: str,
        inspection_type: Optional[InspectionType] = None,
    ) -> List[InspectionPoint]:
        data = await self._request(
            "GET",
            "/points",
            params={
                "piece_id": piece_id,
                "page_id": page_id,
                "type": inspection_type.value if inspection_type else None,
            },
        )
        return [point_from_dict(p) for p in data or []]

    async def create_point(
        self,
        piece_id: str,
        page_id: str,
        inspection_type: InspectionType,
        x: float,
        y: float,
        notes: str = "",
    ) -> InspectionPoint:
        data = await self._request(
            "POST",
            "/points",
            write=True,
            json={
                "piece_id": piece_id,
                "page_id": page_id,
                "type": inspection_type.value,
                "x": x,
                "y": y,
                "notes": notes,
            },
        )
        return point_from_dict(data)

    async def update_point(
        self,
        point_id: str,
        status: Optional[PointStatus] = None,
        notes: Optional[str] = None,
    ) -> InspectionPoint:
        body: Dict[str, Any] = {}
        if status is not None:
            body["status"] = status.value
        if notes is not None:
            body["notes"] = notes
        data = await self._request("PUT", f"/points/{point_id}", write=True, json=body)
        return point_from_dict(data)

    async def delete_point(self, point_id: str) -> None:
        await self._request("DELETE", f"/points/{point_id}", write=True)

    # -- completion ---------------------------------------------------------

    async def complete_inspection(
        self,
        piece_id: str,
        inspection_type: InspectionType,
        decision: InspectionStatus,
        notes: str = "",
    ) -> Piece:
        data = await self._request(
            "POST",
            "/complete",
            write=True,
            json={
                "piece_id": piece_id,
                "type": inspection_type.value,
                "status": decision.value,
                "notes": notes,
            },
        )
        return piece_from_dict(data)
