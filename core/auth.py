"""
core/auth.py — sign-in, sign-up, sign-out and profile sync.

``AuthService`` is the only writer of the session record.  Login and register
go through the gateway unauthenticated, so a wrong password surfaces as
``HttpError(401, ...)`` instead of clearing a session that does not exist.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from core.context import ClientContext
from core.errors import HttpError
from core.gateway import RequestGateway
from logging_config import get_sync_logger
from models.journal import AuthResponse, User


LOGGER = get_sync_logger()

LOGIN = "/api/auth/login"
REGISTER = "/api/auth/register"
PROFILE = "/api/auth/profile"

_PROFILE_FIELDS = ("first_name", "last_name", "email", "bio", "location", "avatar_url")


class AuthService:
    def __init__(self, context: ClientContext, gateway: RequestGateway) -> None:
        self.context = context
        self.gateway = gateway

    async def login(self, email: str, password: str) -> User:
        data = await self.gateway.post(
            LOGIN,
            json={"email": email, "password": password},
            authenticated=False,
        )
        return self._establish(data)

    async def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        data = await self.gateway.post(
            REGISTER,
            json={
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
            },
            authenticated=False,
        )
        return self._establish(data)

    def logout(self) -> bool:
        """Drop the session; listeners receive the single "login required" signal."""
        return self.context.session.clear()

    async def load_profile(self) -> User:
        data = await self.gateway.get(PROFILE)
        user = self._parse_user(data)
        self.context.session.update_profile(user.model_dump())
        return user

    async def update_profile(self, **fields: Any) -> User:
        unknown = set(fields) - set(_PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported profile fields: {', '.join(sorted(unknown))}")
        data = await self.gateway.put(PROFILE, json=fields)
        user = self._parse_user(data)
        self.context.session.update_profile(user.model_dump())
        LOGGER.info("Profile updated for user %s", user.id)
        return user

    def _establish(self, data: Any) -> User:
        try:
            auth = AuthResponse.model_validate(data)
        except ValidationError as exc:
            raise HttpError(200, "Malformed authentication response") from exc
        self.context.session.set_session(
            auth.access_token,
            auth.user.id,
            profile=auth.user.model_dump(),
        )
        return auth.user

    @staticmethod
    def _parse_user(data: Any) -> User:
        # Profile routes answer either ``{"user": {...}}`` or the bare user object.
        payload = data.get("user", data) if isinstance(data, dict) else data
        try:
            return User.model_validate(payload)
        except ValidationError as exc:
            raise HttpError(200, "Malformed profile response") from exc
