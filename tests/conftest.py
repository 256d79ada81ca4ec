import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Settings are read at import time, so point them at scratch paths first
_TEST_ROOT = Path(tempfile.mkdtemp(prefix="image-processor-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT / 'app.db'}"
os.environ["INPUT_PATH"] = str(_TEST_ROOT / "input")
os.environ["OUTPUT_PATH"] = str(_TEST_ROOT / "output")
os.environ["LOG_FORMAT_JSON"] = "false"

from src.core.config import settings  # noqa: E402
from src.main import app  # noqa: E402
from tests.fakes import FakeConvert, SOURCE_NAME  # noqa: E402


@pytest.fixture
def workspace(tmp_path):
    """Input root holding one source image, plus an empty output root."""
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    output_dir.mkdir()
    (input_dir / SOURCE_NAME).write_bytes(b"testing")
    return input_dir, output_dir


@pytest.fixture
def fake_convert(tmp_path):
    return FakeConvert(tmp_path / "bin")


@pytest.fixture
def configured_settings(monkeypatch, workspace, fake_convert):
    """Point the global settings at the test workspace and fake convert."""
    input_dir, output_dir = workspace
    monkeypatch.setattr(settings, "INPUT_PATH", str(input_dir))
    monkeypatch.setattr(settings, "OUTPUT_PATH", str(output_dir))
    monkeypatch.setattr(settings, "TRANSFORM_COMMAND", str(fake_convert.path))
    return settings


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
