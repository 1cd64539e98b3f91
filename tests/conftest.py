"""Shared test fixtures for the LoadWeave test suite."""

from __future__ import annotations

import asyncio
import json
import socket
import threading
from typing import TYPE_CHECKING, Any

import pytest
from aiohttp import web

from loadweave._internal.errors import TransportError
from loadweave.dsl.http import RequestSpec, Response

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Stub HTTP collaborator
# =============================================================================


class StubTransport:
    """In-memory transport returning canned JSON responses.

    Routes are matched newest first on method and a URL fragment; requests
    are recorded in order for assertions.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.requests: list[RequestSpec] = []
        self._routes: list[tuple[str, str, int, Any, str | None]] = []

    def route(
        self,
        method: str,
        fragment: str,
        payload: Any = None,
        status: int = 200,
        *,
        error: str | None = None,
    ) -> StubTransport:
        self._routes.append((method, fragment, status, payload, error))
        return self

    async def send_request(self, request: RequestSpec) -> Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        for method, fragment, status, payload, error in reversed(self._routes):
            if method in ("*", request.method) and fragment in request.url:
                if error is not None:
                    raise TransportError(error)
                return Response(
                    status=status,
                    headers={"Content-Type": "application/json"},
                    body=json.dumps(payload).encode(),
                )
        return Response(status=200, headers={"Content-Type": "application/json"}, body=b"{}")


@pytest.fixture
def stub_transport() -> StubTransport:
    """A fresh stub transport answering ``{}`` with 200 by default."""
    return StubTransport()


# =============================================================================
# Network utilities
# =============================================================================


def _get_free_port() -> int:
    """Find an available port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# =============================================================================
# Demo store HTTP server handlers
# =============================================================================

_TOKEN = "abc123"

_CATEGORIES = [
    {"id": 5, "name": "For Him"},
    {"id": 6, "name": "For Her"},
    {"id": 7, "name": "Unisex"},
]

_PRODUCTS = [
    {"id": 17, "name": "Casual Black-Blue", "description": "Casual", "image": "a.jpg", "price": 24.99, "categoryId": 7},
    {"id": 19, "name": "Deep Indigo", "description": "Indigo", "image": "b.jpg", "price": 19.99, "categoryId": 6},
    {"id": 21, "name": "Perfect Pink", "description": "Pink", "image": "c.jpg", "price": 22.99, "categoryId": 5},
]


def _authorized(request: web.Request) -> bool:
    return request.headers.get("authorization") == f"Bearer {_TOKEN}"


async def _authenticate_handler(request: web.Request) -> web.Response:
    """Return a token for the admin/admin credentials."""
    data = await request.json()
    if data.get("username") != "admin" or data.get("password") != "admin":
        return web.json_response({"error": "bad credentials"}, status=401)
    return web.json_response({"token": _TOKEN})


async def _list_categories_handler(request: web.Request) -> web.Response:
    return web.json_response(_CATEGORIES)


async def _update_category_handler(request: web.Request) -> web.Response:
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)
    data = await request.json()
    return web.json_response({"id": int(request.match_info["id"]), "name": data.get("name")})


async def _list_products_handler(request: web.Request) -> web.Response:
    category = request.query.get("category")
    if category is None:
        return web.json_response(_PRODUCTS)
    return web.json_response([p for p in _PRODUCTS if str(p["categoryId"]) == category])


async def _get_product_handler(request: web.Request) -> web.Response:
    product_id = int(request.match_info["id"])
    for product in _PRODUCTS:
        if product["id"] == product_id:
            return web.json_response(product)
    return web.json_response({"error": "not found"}, status=404)


async def _write_product_handler(request: web.Request) -> web.Response:
    if not _authorized(request):
        return web.json_response({"error": "unauthorized"}, status=401)
    data = await request.json()
    return web.json_response({"id": int(request.match_info.get("id", 99)), **data})


async def _echo_handler(request: web.Request) -> web.Response:
    """Echo back request details as JSON."""
    body = await request.read()
    return web.json_response(
        {
            "method": request.method,
            "path": str(request.path),
            "query": dict(request.query),
            "headers": dict(request.headers),
            "body": body.decode("utf-8", errors="replace"),
        },
        status=200,
    )


async def _delay_handler(request: web.Request) -> web.Response:
    """Respond after a configurable delay (query param: ?delay=0.5)."""
    delay = float(request.query.get("delay", "0.1"))
    await asyncio.sleep(delay)
    return web.json_response({"delayed_by": delay})


async def _error_handler(request: web.Request) -> web.Response:
    """Return a configurable error status (query param: ?status=500)."""
    status = int(request.query.get("status", "500"))
    return web.json_response({"error": True}, status=status)


def _create_demo_app() -> web.Application:
    """Build the demo store app with all test routes."""
    app = web.Application()
    app.router.add_post("/api/authenticate", _authenticate_handler)
    app.router.add_get("/api/category", _list_categories_handler)
    app.router.add_put("/api/category/{id}", _update_category_handler)
    app.router.add_get("/api/product", _list_products_handler)
    app.router.add_post("/api/product", _write_product_handler)
    app.router.add_get("/api/product/{id}", _get_product_handler)
    app.router.add_put("/api/product/{id}", _write_product_handler)
    app.router.add_route("*", "/echo{path:.*}", _echo_handler)
    app.router.add_get("/delay", _delay_handler)
    app.router.add_route("*", "/error", _error_handler)
    return app


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def demo_server() -> AsyncIterator[str]:
    """Aiohttp demo store server fixture.

    Returns the base URL (e.g., 'http://127.0.0.1:54321').
    """
    app = _create_demo_app()
    port = _get_free_port()
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    yield f"http://127.0.0.1:{port}"
    await runner.cleanup()


@pytest.fixture
def sync_demo_server() -> Iterator[str]:
    """Demo store server running in a background thread for sync tests.

    Useful for CLI tests where the run blocks the main thread.
    """
    port = _get_free_port()
    started = threading.Event()
    loop_holder: list[asyncio.AbstractEventLoop] = []

    def _thread_target() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        app = _create_demo_app()
        runner = web.AppRunner(app)
        loop.run_until_complete(runner.setup())
        site = web.TCPSite(runner, "127.0.0.1", port)
        loop.run_until_complete(site.start())
        loop_holder.append(loop)
        started.set()
        loop.run_forever()
        loop.run_until_complete(runner.cleanup())
        loop.close()

    thread = threading.Thread(target=_thread_target, daemon=True)
    thread.start()
    started.wait(timeout=5.0)

    yield f"http://127.0.0.1:{port}"

    if loop_holder:
        loop_holder[0].call_soon_threadsafe(loop_holder[0].stop)
    thread.join(timeout=5.0)
