"""Tests for the startup session bootstrapper."""
from __future__ import annotations

import asyncio

import pytest

from storefront_server.models import User
from storefront_server.session import SessionBootstrapper, SessionState, SessionStore

from .conftest import CREDENTIALS, TOKEN, USER


@pytest.fixture
def verifying_session(storage, api) -> SessionStore:
    storage.save_session(TOKEN, User(**USER))
    return SessionStore(storage, api, verify_on_restore=True)


@pytest.mark.asyncio
async def test_fast_restore_wins(verifying_session):
    bootstrapper = SessionBootstrapper(verifying_session, timeout=1.0)

    state = await bootstrapper.run()

    assert state == SessionState.AUTHENTICATED
    assert verifying_session.initialized is True


@pytest.mark.asyncio
async def test_hanging_restore_is_forced_anonymous(verifying_session, api):
    api.hang.add("get_profile")
    bootstrapper = SessionBootstrapper(verifying_session, timeout=0.05)

    state = await asyncio.wait_for(bootstrapper.run(), timeout=1.0)

    assert state == SessionState.ANONYMOUS
    assert verifying_session.initialized is True
    assert verifying_session.authenticated is False
    # the restore is still in flight
    assert verifying_session.loading is True

    await bootstrapper.shutdown()


@pytest.mark.asyncio
async def test_late_restore_result_is_ignored(verifying_session, api):
    api.hang.add("get_profile")
    bootstrapper = SessionBootstrapper(verifying_session, timeout=0.05)
    await bootstrapper.run()

    api.gate.set()
    restored = await bootstrapper._restore_task

    assert restored is False
    assert verifying_session.state == SessionState.ANONYMOUS
    assert verifying_session.authenticated is False
    assert verifying_session.loading is False


@pytest.mark.asyncio
async def test_bootstrapper_runs_once(verifying_session, api):
    bootstrapper = SessionBootstrapper(verifying_session, timeout=1.0)

    await bootstrapper.run()
    verifying_session.logout()
    state = await bootstrapper.run()

    assert state == SessionState.ANONYMOUS
    assert api.names().count("get_profile") == 1


@pytest.mark.asyncio
async def test_anonymous_start(session):
    bootstrapper = SessionBootstrapper(session, timeout=1.0)

    assert await bootstrapper.run() == SessionState.ANONYMOUS
    assert session.initialized is True


@pytest.mark.asyncio
async def test_late_rejected_restore_keeps_newer_login(verifying_session, api, storage):
    storage.save_session("tok-old", User(**USER))
    api.hang.add("get_profile")
    api.fail.add("get_profile")
    bootstrapper = SessionBootstrapper(verifying_session, timeout=0.05)
    await bootstrapper.run()

    await verifying_session.login(CREDENTIALS)
    api.gate.set()
    await bootstrapper._restore_task

    assert verifying_session.authenticated is True
    assert verifying_session.token == TOKEN
    assert storage.get_token() == TOKEN
    assert storage.get_item("user") is not None
