"""Shared pytest fixtures.

Fixtures:
    github_server: Factory serving canned aiohttp handlers on localhost.
"""
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer


@asynccontextmanager
async def serve(routes: Dict[Tuple[str, str], object]) -> AsyncIterator[str]:
    """Run a local HTTP server for the given (method, path) handlers.

    Yields:
        Root URL of the server, without trailing slash
    """
    app = web.Application()
    for (method, path), handler in routes.items():
        app.router.add_route(method, path, handler)

    server = TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


@pytest.fixture
def github_server():
    return serve
