"""Tests for the shared upstream session manager."""

from __future__ import annotations

import asyncio

import pytest

from app.services.session import SessionManager

from innertube_fakes import FakeInnerTube


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def _factory(built: list[FakeInnerTube]):
    def build(session):
        fake = FakeInnerTube()
        fake.session = session
        built.append(fake)
        return fake

    return build


def test_manager_requires_a_client_source(make_settings) -> None:
    with pytest.raises(ValueError):
        SessionManager(make_settings())


@pytest.mark.anyio("asyncio")
async def test_session_is_reused_until_forced(make_settings) -> None:
    built: list[FakeInnerTube] = []
    sessions = SessionManager(make_settings(), client_factory=_factory(built))

    first = await sessions.get()
    assert await sessions.get() is first
    assert len(built) == 1

    fresh = await sessions.get(force_new=True)
    assert fresh is not first
    assert fresh.session.visitor_data != first.session.visitor_data
    assert sessions.generation == 2


@pytest.mark.anyio("asyncio")
async def test_burst_of_refreshes_creates_one_session(make_settings) -> None:
    built: list[FakeInnerTube] = []
    sessions = SessionManager(make_settings(), client_factory=_factory(built))
    stale = await sessions.get()

    clients = await asyncio.gather(
        *(sessions.get(force_new=True, stale=stale) for _ in range(5))
    )

    assert len(built) == 2
    assert all(client is clients[0] for client in clients)
