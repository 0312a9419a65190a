"""Backend-as-a-service client: auth, tables, remote procedures and storage."""

import asyncio
import inspect
import logging
import time
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from circuit.config import Settings, get_settings
from circuit.exceptions import AuthError, BackendError, ConfigurationError, NotFoundError
from circuit.schemas import AuthEvent, Session, User


logger = logging.getLogger(__name__)

NO_ROWS_CODE = "PGRST116"
AUTH_PATH = "/auth/"
# Refresh this many seconds before the access token expires
REFRESH_MARGIN_SECONDS = 60

AuthCallback = Callable[[AuthEvent, Optional[Session]], Union[None, Awaitable[None]]]


def _format_value(value: Any) -> str:
    """Render a filter value the way the REST layer expects it."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _parse_count(content_range: Optional[str]) -> Optional[int]:
    """Extract the total from a `Content-Range: 0-9/42` header."""
    if not content_range or "/" not in content_range:
        return None
    total = content_range.split("/")[-1]
    return int(total) if total.isdigit() else None


def _error_from_response(response: httpx.Response, error_cls=BackendError) -> BackendError:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = (
        body.get("message")
        or body.get("msg")
        or body.get("error_description")
        or body.get("error")
        or response.text
        or f"HTTP {response.status_code}"
    )
    code = body.get("code") or body.get("error_code")
    if code is not None:
        code = str(code)

    if code == NO_ROWS_CODE or response.status_code == 404:
        error_cls = NotFoundError

    return error_cls(
        message,
        code=code,
        status_code=response.status_code,
        details=body.get("details"),
        hint=body.get("hint"),
    )


class APIResponse:
    """Result of a table query or procedure call."""

    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count

    def __repr__(self):
        return f"<APIResponse count={self.count} data={self.data!r}>"


class AuthSubscription:
    """Handle returned by `on_auth_state_change`."""

    def __init__(self, client: "BackendClient", callback: AuthCallback):
        self._client = client
        self.callback = callback

    def unsubscribe(self):
        self._client._remove_listener(self.callback)


class QueryBuilder:
    """Request builder for one table, mirroring the REST filter grammar."""

    def __init__(self, client: "BackendClient", table: str):
        self._client = client
        self.table = table
        self.method = "GET"
        self.params: List[Tuple[str, str]] = []
        self.headers: Dict[str, str] = {}
        self.body: Any = None
        self._prefer: List[str] = []
        self._single = False
        self._maybe_single = False

    # ---- verbs ----

    def select(self, columns: str = "*", count: Optional[str] = None, head: bool = False) -> "QueryBuilder":
        self.method = "HEAD" if head else "GET"
        self.params.append(("select", "".join(columns.split())))
        if count:
            self._prefer.append(f"count={count}")
        return self

    def insert(self, values: Union[Dict[str, Any], List[Dict[str, Any]]], returning: bool = True) -> "QueryBuilder":
        self.method = "POST"
        self.body = values
        self._prefer.append("return=representation" if returning else "return=minimal")
        return self

    def upsert(
        self,
        values: Union[Dict[str, Any], List[Dict[str, Any]]],
        on_conflict: Optional[str] = None,
    ) -> "QueryBuilder":
        self.method = "POST"
        self.body = values
        self._prefer.append("resolution=merge-duplicates")
        self._prefer.append("return=representation")
        if on_conflict:
            self.params.append(("on_conflict", on_conflict))
        return self

    def update(self, values: Dict[str, Any]) -> "QueryBuilder":
        self.method = "PATCH"
        self.body = values
        self._prefer.append("return=representation")
        return self

    def delete(self) -> "QueryBuilder":
        self.method = "DELETE"
        return self

    # ---- filters ----

    def _filter(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.params.append((column, f"{operator}.{_format_value(value)}"))
        return self

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "eq", value)

    def neq(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "neq", value)

    def gt(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "gt", value)

    def lte(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "lte", value)

    def ilike(self, column: str, pattern: str) -> "QueryBuilder":
        return self._filter(column, "ilike", pattern)

    def is_(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "is", value)

    def not_is(self, column: str, value: Any) -> "QueryBuilder":
        return self._filter(column, "not.is", value)

    def in_(self, column: str, values: List[Any]) -> "QueryBuilder":
        quoted = ",".join(f'"{_format_value(v)}"' for v in values)
        self.params.append((column, f"in.({quoted})"))
        return self

    def or_(self, expression: str) -> "QueryBuilder":
        self.params.append(("or", f"({expression})"))
        return self

    # ---- shaping ----

    def order(self, column: str, desc: bool = False, nulls_last: bool = False) -> "QueryBuilder":
        value = f"{column}.{'desc' if desc else 'asc'}"
        if nulls_last:
            value += ".nullslast"
        self.params.append(("order", value))
        return self

    def limit(self, count: int) -> "QueryBuilder":
        self.params.append(("limit", str(count)))
        return self

    def range(self, start: int, end: int) -> "QueryBuilder":
        """Inclusive row range, as offset and limit."""
        self.params.append(("offset", str(start)))
        self.params.append(("limit", str(end - start + 1)))
        return self

    def single(self) -> "QueryBuilder":
        """Expect exactly one row; no row raises `NotFoundError`."""
        self._single = True
        self.headers["Accept"] = "application/vnd.pgrst.object+json"
        return self

    def maybe_single(self) -> "QueryBuilder":
        """Expect zero or one row; zero yields `data=None`."""
        self._maybe_single = True
        return self

    async def execute(self) -> APIResponse:
        headers = dict(self.headers)
        if self._prefer:
            headers["Prefer"] = ",".join(self._prefer)

        response = await self._client.request(
            self.method,
            f"/rest/v1/{self.table}",
            params=self.params,
            json=self.body,
            headers=headers,
        )

        count = _parse_count(response.headers.get("content-range"))
        if self.method == "HEAD" or not response.content:
            return APIResponse(None, count)

        data = response.json()
        if self._maybe_single:
            rows = data if isinstance(data, list) else [data]
            if len(rows) > 1:
                raise BackendError(
                    f"Expected at most one row from {self.table}, got {len(rows)}",
                    status_code=response.status_code,
                )
            data = rows[0] if rows else None
        return APIResponse(data, count)


class BackendClient:
    """Async client for the managed backend.

    Holds the signed-in session in memory only and notifies subscribers
    whenever it changes.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not anon_key:
            raise ConfigurationError("Backend URL and anon key must be provided in the environment")
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self._http = httpx.AsyncClient(base_url=self.url, timeout=timeout, transport=transport)
        self._session: Optional[Session] = None
        self._listeners: List[AuthCallback] = []
        self._refresh_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **kwargs) -> "BackendClient":
        settings = settings or get_settings()
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.request_timeout,
            **kwargs,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # ============== Transport ==============

    def _headers(self) -> Dict[str, str]:
        token = self._session.access_token if self._session else self.anon_key
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
        }

    def _expiring(self) -> bool:
        expires_at = self._session.expires_at if self._session else None
        return expires_at is not None and expires_at - time.time() < REFRESH_MARGIN_SECONDS

    async def _send(self, method, path, params, json, content, headers, error_cls) -> httpx.Response:
        merged = self._headers()
        if headers:
            merged.update(headers)

        try:
            return await self._http.request(
                method,
                path,
                params=params,
                json=json,
                content=content,
                headers=merged,
            )
        except httpx.HTTPError as e:
            raise error_cls(f"Request to {path} failed: {e}") from e

    async def request(
        self,
        method: str,
        path: str,
        params: Any = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        error_cls=BackendError,
    ) -> httpx.Response:
        """Send one request, raising `BackendError` on any non-2xx response.

        Signed-in requests outside the auth service refresh a session that
        is about to expire, and retry once with a new token if the server
        rejects the current one.
        """
        signed_in = self._session is not None and not path.startswith(AUTH_PATH)
        if signed_in and self._expiring():
            await self._refresh_if_stale(self._session.access_token)
        token = self._session.access_token if self._session else None

        response = await self._send(method, path, params, json, content, headers, error_cls)
        if response.status_code == 401 and signed_in and token is not None:
            if await self._refresh_if_stale(token):
                response = await self._send(method, path, params, json, content, headers, error_cls)

        if response.is_error:
            raise _error_from_response(response, error_cls)
        return response

    async def _refresh_if_stale(self, token: str) -> bool:
        """Refresh the session unless `token` has already been replaced.

        Returns whether a newer token is available. A refresh token the auth
        service rejects ends the session.
        """
        async with self._refresh_lock:
            if self._session is None:
                return False
            if self._session.access_token != token:
                return True
            try:
                return await self.refresh_session() is not None
            except AuthError as e:
                if e.status_code is not None and 400 <= e.status_code < 500:
                    logger.warning("Refresh token rejected; signing out: %r", e)
                    await self._set_session(AuthEvent.SIGNED_OUT, None)
                    raise AuthError(
                        "Your session has expired. Please sign in again.",
                        code=e.code,
                        status_code=401,
                    ) from e
                logger.error("Error refreshing session: %r", e)
                return False

    # ============== Auth ==============

    def on_auth_state_change(self, callback: AuthCallback) -> AuthSubscription:
        """Register for (event, session) notifications."""
        self._listeners.append(callback)
        return AuthSubscription(self, callback)

    def _remove_listener(self, callback: AuthCallback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    async def _notify(self, event: AuthEvent, session: Optional[Session]):
        for callback in list(self._listeners):
            result = callback(event, session)
            if inspect.isawaitable(result):
                await result

    async def _set_session(self, event: AuthEvent, session: Optional[Session]):
        self._session = session
        await self._notify(event, session)

    async def get_session(self) -> Optional[Session]:
        return self._session

    async def sign_up(self, email: str, password: str, display_name: Optional[str] = None) -> User:
        """Create an account.

        When the project does not require email confirmation the response
        already carries a session, which becomes the current one.
        """
        response = await self.request(
            "POST",
            "/auth/v1/signup",
            json={
                "email": email,
                "password": password,
                "data": {"display_name": display_name} if display_name else {},
            },
            error_cls=AuthError,
        )
        body = response.json()
        if body.get("access_token"):
            session = Session.model_validate(body)
            await self._set_session(AuthEvent.SIGNED_IN, session)
            return session.user
        return User.model_validate(body.get("user") or body)

    async def sign_in(self, email: str, password: str) -> Session:
        response = await self.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            error_cls=AuthError,
        )
        session = Session.model_validate(response.json())
        await self._set_session(AuthEvent.SIGNED_IN, session)
        return session

    async def refresh_session(self) -> Optional[Session]:
        if not self._session or not self._session.refresh_token:
            return None
        response = await self.request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self._session.refresh_token},
            error_cls=AuthError,
        )
        session = Session.model_validate(response.json())
        await self._set_session(AuthEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self):
        """Revoke the session server-side and clear it locally.

        The local session is cleared even if the revoke request fails.
        """
        if self._session is None:
            return
        try:
            await self.request("POST", "/auth/v1/logout", error_cls=AuthError)
        finally:
            await self._set_session(AuthEvent.SIGNED_OUT, None)

    # ============== Tables / RPC ==============

    def table(self, name: str) -> QueryBuilder:
        return QueryBuilder(self, name)

    async def rpc(self, fn: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        response = await self.request("POST", f"/rest/v1/rpc/{fn}", json=params or {})
        data = response.json() if response.content else None
        return APIResponse(data)

    # ============== Storage ==============

    async def upload(
        self,
        bucket: str,
        path: str,
        content: bytes,
        content_type: str,
        upsert: bool = False,
    ) -> str:
        """Store an object and return its path inside the bucket."""
        await self.request(
            "POST",
            f"/storage/v1/object/{bucket}/{quote(path)}",
            content=content,
            headers={
                "Content-Type": content_type,
                "x-upsert": "true" if upsert else "false",
            },
        )
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{self.url}/storage/v1/object/public/{bucket}/{quote(path)}"
