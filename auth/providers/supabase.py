"""
Supabase identity provider.

Talks to the Supabase Auth (GoTrue) REST API with httpx. Every call opens
its own client; no connection state outlives a call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import httpx

from auth.models import Session, User, utcnow
from auth.providers.base import (
    AuthResponse,
    IdentityProvider,
    IdentityProviderError,
    code_challenge,
    generate_code_verifier,
)

_logger = logging.getLogger(__name__)

AUTH_PATH = "/auth/v1"


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_user(data: Optional[Dict[str, Any]]) -> Optional[User]:
    if not data or not data.get("id"):
        return None
    return User(
        id=data["id"],
        email=(data.get("email") or "").lower(),
        email_confirmed_at=_parse_timestamp(data.get("email_confirmed_at")),
        created_at=_parse_timestamp(data.get("created_at")) or utcnow(),
    )


def _parse_session(data: Optional[Dict[str, Any]]) -> Optional[Session]:
    if not data or not data.get("access_token"):
        return None

    if data.get("expires_at"):
        expires_at = datetime.fromtimestamp(int(data["expires_at"]), tz=timezone.utc)
    else:
        expires_at = utcnow() + timedelta(seconds=int(data.get("expires_in") or 3600))

    return Session(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token") or "",
        expires_at=expires_at,
        user=_parse_user(data.get("user")),
    )


def _error_from_response(response: httpx.Response) -> IdentityProviderError:
    """Build an IdentityProviderError from a GoTrue error body (several shapes exist)."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = (
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or f"Auth request failed with status {response.status_code}"
    )
    code = body.get("error_code")
    if code is None and isinstance(body.get("code"), str):
        code = body["code"]
    if code is None and isinstance(body.get("error"), str):
        code = body["error"]

    return IdentityProviderError(str(message), code=code, status=response.status_code)


class SupabaseIdentityProvider(IdentityProvider):
    """
    GoTrue REST adapter.

    Args:
        url: Supabase project URL
        anon_key: Public anon key (sent as `apikey`)
        session: Session restored from the request's cookies
        timeout: Seconds per HTTP call (None disables the client timeout)
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        session: Optional[Session] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(session)
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.timeout = timeout
        self.transport = transport

    @property
    def source_name(self) -> str:
        return "supabase"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.url}{AUTH_PATH}",
            headers={"apikey": self.anon_key},
            timeout=self.timeout,
            transport=self.transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token or self.anon_key}"}
        async with self._client() as client:
            response = await client.request(method, path, params=params, json=json, headers=headers)

        if response.is_error:
            raise _error_from_response(response)
        if not response.content:
            return {}
        return response.json()

    def _require_session(self) -> Session:
        if self.session is None:
            raise IdentityProviderError("Auth session missing!", "no_session", 401)
        return self.session

    def _adopt(self, data: Dict[str, Any]) -> AuthResponse:
        """Turn a session-or-user body into an AuthResponse, adopting any session."""
        session = _parse_session(data)
        if session is not None:
            self.session = session
            return AuthResponse(user=session.user, session=session)
        return AuthResponse(user=_parse_user(data.get("user") or data), session=None)

    async def sign_up(
        self, email: str, password: str, redirect_to: Optional[str] = None
    ) -> AuthResponse:
        params = {"redirect_to": redirect_to} if redirect_to else None
        verifier = generate_code_verifier()
        data = await self._request(
            "POST",
            "/signup",
            params=params,
            json={
                "email": email,
                "password": password,
                "code_challenge": code_challenge(verifier),
                "code_challenge_method": "s256",
            },
        )
        self.code_verifier = verifier
        return self._adopt(data)

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return self._adopt(data)

    async def sign_out(self) -> None:
        session, self.session = self.session, None
        if session is None:
            return
        try:
            await self._request("POST", "/logout", access_token=session.access_token)
        except IdentityProviderError as e:
            # Already-gone sessions count as signed out
            if e.status in (401, 403, 404):
                _logger.debug(f"[supabase] Sign-out of unknown session: {e.message}")
                return
            raise

    async def reset_password_for_email(
        self, email: str, redirect_to: Optional[str] = None
    ) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._request("POST", "/recover", params=params, json={"email": email})

    async def verify_otp(self, token_hash: str, token_type: str) -> AuthResponse:
        data = await self._request(
            "POST", "/verify", json={"type": token_type, "token_hash": token_hash}
        )
        return self._adopt(data)

    async def exchange_code_for_session(
        self, code: str, code_verifier: Optional[str] = None
    ) -> AuthResponse:
        if not code_verifier:
            raise IdentityProviderError("PKCE code verifier not found in storage", "bad_code_verifier", 400)
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": code, "code_verifier": code_verifier},
        )
        return self._adopt(data)

    async def update_user_password(self, password: str) -> User:
        session = self._require_session()
        data = await self._request(
            "PUT", "/user", json={"password": password}, access_token=session.access_token
        )
        return _parse_user(data)

    async def get_user(self) -> Optional[User]:
        if self.session is None:
            return None
        data = await self._request("GET", "/user", access_token=self.session.access_token)
        return _parse_user(data)

    async def get_session(self) -> Optional[Session]:
        """
        Return the stored session once GoTrue confirms it is still live.

        An unexpired token is checked with GET /user so sessions revoked
        server-side (sign-out everywhere, password change) are dropped.
        An expired token is refreshed instead. 4xx answers mean no session;
        5xx answers raise.
        """
        if self.session is None:
            return None
        try:
            if self.session.is_expired():
                return await self.refresh_session()
            user = await self.get_user()
        except IdentityProviderError as e:
            if e.status is not None and e.status >= 500:
                raise
            _logger.info(f"[supabase] Stored session rejected: {e.message}")
            self.session = None
            return None

        if user is None:
            self.session = None
            return None
        self.session.user = user
        return self.session

    async def refresh_session(self) -> Session:
        session = self._require_session()
        data = await self._request(
            "POST",
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
        )
        refreshed = _parse_session(data)
        if refreshed is None:
            raise IdentityProviderError("No session returned after refresh", status=500)
        self.session = refreshed
        return refreshed
