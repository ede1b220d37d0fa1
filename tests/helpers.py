"""Test helpers and utilities for the test suite."""

import json
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx
import jwt
from dotenv import load_dotenv
from fastapi import FastAPI, Header, HTTPException, Request

from lms_client.auth.navigation import Navigator
from lms_client.auth.session import SessionStore
from lms_client.client.http_client import ApiClient

load_dotenv()

TEST_BASE_URL = "http://lms.test/api"

TEST_USER = {
    "_id": "u-1",
    "username": "admin",
    "email": "admin@example.com",
    "role": "Admin",
}


def print_test_status(message: str):
    """Print test status messages with timestamp."""
    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    print(f"[{timestamp}] {message}")


def create_test_jwt_token(sub: str = "u-1", exp_minutes: float = 60) -> str:
    """Create a test JWT; a negative exp_minutes gives an already expired token."""
    payload = {
        "sub": sub,
        "iat": int(time.time()),
        "exp": int(time.time() + exp_minutes * 60),
    }
    # Simple secret for test tokens; the client never verifies signatures
    return jwt.encode(payload, "test_secret", algorithm="HS256")


def make_session_store(
    access_token: Optional[str] = "tok1",
    refresh_token: Optional[str] = "ref1",
    user: Optional[dict] = None,
) -> SessionStore:
    store = SessionStore()
    if access_token:
        store.set_auth(user or TEST_USER, access_token, refresh_token)
    return store


def json_response(status: int, body: Any = None, headers: Optional[dict] = None) -> httpx.Response:
    return httpx.Response(status, json=body if body is not None else {}, headers=headers)


# ==============================================================================
# SCRIPTED BACKEND (httpx.MockTransport)
# ==============================================================================

Responder = Union[httpx.Response, Callable[[httpx.Request], httpx.Response], Exception]


class ScriptedBackend:
    """Route table of (METHOD, path) -> queued responses, recording every request.

    Each route pops its next response; the last one is reused once the queue
    runs dry. A queued Exception is raised (transport failures).
    """

    def __init__(self, base_path: str = "/api"):
        self.base_path = base_path
        self.routes: Dict[Tuple[str, str], List[Responder]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, *responses: Responder) -> "ScriptedBackend":
        self.routes.setdefault((method.upper(), path), []).extend(responses)
        return self

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        full = self.base_path + path
        return [r for r in self.requests if r.method == method.upper() and r.url.path == full]

    def auth_headers(self, method: str, path: str) -> List[Optional[str]]:
        return [r.headers.get("authorization") for r in self.calls(method, path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path[len(self.base_path):] if request.url.path.startswith(self.base_path) else request.url.path
        queue = self.routes.get((request.method, path))
        if not queue:
            return json_response(404, {"message": f"no route for {request.method} {path}"})

        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(responder, Exception):
            raise responder
        if callable(responder):
            return responder(request)
        return responder

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_client(
    backend: Any,
    store: Optional[SessionStore] = None,
    current_path: str = "/admin/kelas",
    **kwargs,
) -> Tuple[ApiClient, SessionStore, Navigator]:
    """ApiClient wired to a ScriptedBackend or any httpx transport."""
    store = store if store is not None else make_session_store()
    navigator = Navigator(current_path)
    transport = backend.transport if isinstance(backend, ScriptedBackend) else backend
    kwargs.setdefault("proactive_refresh", False)
    client = ApiClient(store, navigator, base_url=TEST_BASE_URL, transport=transport, **kwargs)
    return client, store, navigator


def request_json(request: httpx.Request) -> Any:
    return json.loads(request.content.decode() or "null")


# ==============================================================================
# FAKE LMS BACKEND (FastAPI over httpx.ASGITransport)
# ==============================================================================


def build_fake_lms_app(classes: Optional[List[dict]] = None) -> FastAPI:
    """Small in-memory LMS API: login, refresh, info-user, class list and delete.

    Access tokens are "tok<n>"; every refresh issues the next pair. Setting
    `app.state.fail_deletes` makes DELETE /v1/kelas/{id} answer 500.
    """
    app = FastAPI()
    app.state.classes = list(classes or [])
    app.state.generation = 1
    app.state.list_calls = []
    app.state.fail_deletes = False
    app.state.refresh_calls = 0

    def current_token() -> str:
        return f"tok{app.state.generation}"

    def require_token(authorization: Optional[str]) -> None:
        if authorization != f"Bearer {current_token()}":
            raise HTTPException(status_code=401, detail="Token expired")

    @app.post("/api/v1/users/login")
    async def login(request: Request):
        body = await request.json()
        if body.get("password") != "secret":
            raise HTTPException(status_code=400, detail="Invalid credentials")
        return {
            "accessToken": current_token(),
            "refreshToken": f"ref{app.state.generation}",
            "user": TEST_USER,
        }

    @app.post("/api/v1/users/refresh")
    async def refresh(request: Request):
        body = await request.json()
        app.state.refresh_calls += 1
        if body.get("refreshToken") != f"ref{app.state.generation}":
            raise HTTPException(status_code=401, detail="Invalid refresh token")
        app.state.generation += 1
        return {
            "accessToken": current_token(),
            "refreshToken": f"ref{app.state.generation}",
        }

    @app.get("/api/v1/users/info-user")
    async def info_user(authorization: Optional[str] = Header(None)):
        require_token(authorization)
        return {"user": {**TEST_USER, "username": "admin-updated"}}

    @app.get("/api/v1/admin/all-kelas")
    async def all_kelas(
        page: int = 1,
        search: str = "",
        authorization: Optional[str] = Header(None),
    ):
        require_token(authorization)
        app.state.list_calls.append({"page": page, "search": search})
        rows = [c for c in app.state.classes if search.lower() in c["name"].lower()]
        return {"data": rows, "page": page, "totalPages": 1, "total": len(rows)}

    @app.delete("/api/v1/kelas/{kelas_id}")
    async def delete_kelas(kelas_id: str, authorization: Optional[str] = Header(None)):
        require_token(authorization)
        if app.state.fail_deletes:
            raise HTTPException(status_code=500, detail="Database unavailable")
        app.state.classes = [c for c in app.state.classes if c["_id"] != kelas_id]
        return {"message": "Kelas deleted"}

    return app


def asgi_transport(app: FastAPI) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=app)
