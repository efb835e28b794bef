"""Tests for the auth session, tokens and profile bootstrap."""

import pytest

from tasklanes.auth.jwt import create_access_token, decode_access_token, user_from_token
from tasklanes.auth.profile import ensure_user_profile
from tasklanes.auth.session import AuthSession
from tasklanes.models.constants import USERS_COLLECTION

from fakes import RecordingDocumentStore


def test_token_round_trip(test_user):
    token = create_access_token(test_user)
    assert decode_access_token(token)["sub"] == test_user.id
    assert user_from_token(token) == test_user


def test_invalid_token_rejected():
    assert decode_access_token("not-a-token") is None
    assert user_from_token("not-a-token") is None


@pytest.mark.asyncio
async def test_session_notifies_listeners(test_user):
    session = AuthSession()
    seen = []

    async def listener(user):
        seen.append(user.id if user else None)

    remove = session.add_listener(listener)
    assert session.resolved is False

    await session.sign_in(test_user)
    await session.sign_out()
    remove()
    await session.sign_in(test_user)

    assert seen == [test_user.id, None]
    assert session.resolved is True
    assert session.current_user == test_user


@pytest.mark.asyncio
async def test_profile_created_once(test_user):
    store = RecordingDocumentStore()

    assert await ensure_user_profile(store, test_user) is True
    assert await ensure_user_profile(store, test_user) is False

    [profile] = await store.query(USERS_COLLECTION, {"user_id": test_user.id})
    assert profile.id == test_user.id
    assert profile.data["email"] == "test@example.com"
    assert store.write_count == 1
