"""Pytest configuration and shared fixtures."""

from typing import Callable, List, Sequence

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api import app, get_uow
from client import InspectionApiClient
from infrastructure import InMemoryDatabase, InMemoryUnitOfWork, build_piece
from model import Form, Piece, PieceStatus, Workspace


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    """Ensure FastAPI dependency overrides are reset between tests."""
    app.dependency_overrides = {}
    yield
    app.dependency_overrides = {}


@pytest.fixture
def db() -> InMemoryDatabase:
    """A fresh, empty in-memory database per test."""
    return InMemoryDatabase()


@pytest.fixture
def uow(db: InMemoryDatabase) -> InMemoryUnitOfWork:
    return InMemoryUnitOfWork(db)


@pytest.fixture
def wired_app(db: InMemoryDatabase):
    """The FastAPI app with every request bound to the test database."""
    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(db)
    return app


@pytest.fixture
def test_client(wired_app) -> TestClient:
    """Create FastAPI test client.

    Not used as a context manager, so the demo-data lifespan never runs.
    """
    return TestClient(wired_app)


@pytest_asyncio.fixture
async def api_client(wired_app):
    """InspectionApiClient talking to the app in-process over ASGI."""
    http = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=wired_app), base_url="http://testserver"
    )
    client = InspectionApiClient(http_client=http)
    yield client
    await http.aclose()


@pytest.fixture
def seed_form(uow: InMemoryUnitOfWork) -> Callable[..., List[Piece]]:
    """Return a helper that creates a workspace/form holding pieces.

    Pieces are named by ``piece_ids`` and get the matching entry of
    ``page_counts`` as their number of drawing pages; production order
    follows the list order.
    """

    def _seed(
        workspace_id: str,
        form_id: str,
        piece_ids: Sequence[str] = (),
        page_counts: Sequence[int] = (),
        status: PieceStatus = PieceStatus.IN_PRODUCTION,
    ) -> List[Piece]:
        counts = list(page_counts) or [1] * len(piece_ids)
        pieces = []
        with uow:
            if uow.workspaces.get(workspace_id) is None:
                uow.workspaces.save(Workspace(id=workspace_id, name=workspace_id))
            if uow.forms.get(form_id) is None:
                uow.forms.save(Form(id=form_id, workspace_id=workspace_id, name=form_id))
            for order, (piece_id, count) in enumerate(zip(piece_ids, counts), start=1):
                piece = build_piece(
                    piece_id=piece_id,
                    workspace_id=workspace_id,
                    form_id=form_id,
                    piece_number=piece_id,
                    page_count=count,
                    production_order=order,
                    status=status,
                )
                uow.pieces.save(piece)
                pieces.append(piece)
        return pieces

    return _seed
