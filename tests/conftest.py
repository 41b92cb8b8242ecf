# tests/conftest.py
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from starlette.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from resizer.config import Settings  # noqa: E402
from resizer.main import create_app  # noqa: E402
from tests.testlib.images import encode, flat_image, noise_image  # noqa: E402


# ---------------------------------- fixtures -----------------------------------


@pytest.fixture()
def photo_png() -> bytes:
    return encode(noise_image((400, 300)), "PNG")


@pytest.fixture()
def graphic_png() -> bytes:
    return encode(flat_image((400, 300)), "PNG")


@pytest.fixture()
def photo_jpeg() -> bytes:
    return encode(noise_image((400, 300)), "JPEG", quality=90)


@pytest.fixture()
def settings() -> Settings:
    return Settings()


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Minimal asyncio support without requiring pytest-asyncio."""

    test_func = pyfuncitem.obj
    if asyncio.iscoroutinefunction(test_func):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            call_kwargs = {
                name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
            }
            loop.run_until_complete(test_func(**call_kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None
