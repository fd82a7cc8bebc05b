from __future__ import annotations

import json

import httpx
import pytest

from core.auth import AuthService
from core.errors import HttpError
from core.gateway import RequestGateway


USER = {"id": 7, "email": "trader@example.com", "first_name": "Ada", "last_name": "Lovelace"}


def _service(context, handler) -> tuple[AuthService, RequestGateway]:
    gateway = RequestGateway(context, transport=httpx.MockTransport(handler))
    return AuthService(context, gateway), gateway


@pytest.mark.asyncio
async def test_login_establishes_session(context):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"access_token": "fresh", "user": USER})

    auth, gateway = _service(context, handler)
    async with gateway:
        user = await auth.login("trader@example.com", "s3cret")

    assert user.full_name == "Ada Lovelace"
    assert context.session.get_token() == "fresh"
    assert context.session.user_id == 7
    assert context.session.get_session().profile["email"] == "trader@example.com"
    assert seen[0].url.path == "/api/auth/login"
    assert json.loads(seen[0].content) == {"email": "trader@example.com", "password": "s3cret"}


@pytest.mark.asyncio
async def test_register_posts_names(context):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"access_token": "new-user", "user": USER})

    auth, gateway = _service(context, handler)
    async with gateway:
        await auth.register("trader@example.com", "s3cret", "Ada", "Lovelace")

    assert seen[0].url.path == "/api/auth/register"
    assert json.loads(seen[0].content)["first_name"] == "Ada"
    assert context.session.get_token() == "new-user"


@pytest.mark.asyncio
async def test_wrong_password_surfaces_message(context):
    signals = []
    context.session.on_invalidated(lambda: signals.append("login"))

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "Invalid email or password"})

    auth, gateway = _service(context, handler)
    async with gateway:
        with pytest.raises(HttpError) as excinfo:
            await auth.login("trader@example.com", "wrong")

    assert excinfo.value.message == "Invalid email or password"
    assert context.session.get_token() is None
    assert signals == []


@pytest.mark.asyncio
async def test_malformed_login_payload(context):
    auth, gateway = _service(context, lambda request: httpx.Response(200, json={"user": USER}))
    async with gateway:
        with pytest.raises(HttpError):
            await auth.login("trader@example.com", "s3cret")
    assert context.session.get_session() is None


@pytest.mark.asyncio
async def test_profile_load_and_update(signed_in_context):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"user": USER})
        body = json.loads(request.content)
        return httpx.Response(200, json={"user": {**USER, **body}})

    auth, gateway = _service(signed_in_context, handler)
    async with gateway:
        loaded = await auth.load_profile()
        updated = await auth.update_profile(first_name="Augusta", bio="Analyst")
        with pytest.raises(ValueError):
            await auth.update_profile(password="nope")

    assert loaded.email == "trader@example.com"
    assert updated.first_name == "Augusta"
    assert updated.bio == "Analyst"
    assert [request.method for request in seen] == ["GET", "PUT"]
    assert signed_in_context.session.get_session().profile["first_name"] == "Augusta"
    assert signed_in_context.session.get_token() == "token-1"


@pytest.mark.asyncio
async def test_logout_signals_once(signed_in_context):
    signals = []
    signed_in_context.session.on_invalidated(lambda: signals.append("login"))
    auth, gateway = _service(signed_in_context, lambda request: httpx.Response(200))

    async with gateway:
        assert auth.logout() is True
        assert auth.logout() is False

    assert signals == ["login"]
