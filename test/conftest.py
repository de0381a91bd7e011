import copy
import shutil
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from lspmux.daemon.server import ToolServer
from lspmux.utils.config import DEFAULT_CONFIG

FIXTURES_DIR = Path(__file__).parent / "fixtures"
FAKE_SERVER = FIXTURES_DIR / "fake_lsp_server.py"


def fake_server_entry(*flags: str) -> dict:
    return {
        "name": "fakels",
        "command": [sys.executable, str(FAKE_SERVER), *flags],
        "extensions": ["py"],
    }


def make_config(*flags: str, **daemon) -> dict:
    config = copy.deepcopy(dict(DEFAULT_CONFIG))
    config["daemon"].update({"request_timeout": 10.0, "startup_timeout": 10.0})
    config["daemon"]["diagnostics_timeout"] = 2.0
    config["daemon"].update(daemon)
    config["servers"] = [fake_server_entry(*flags)]
    return config


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def isolated_config(temp_dir, monkeypatch):
    cache_dir = temp_dir / "cache"
    config_dir = temp_dir / "config"
    cache_dir.mkdir()
    config_dir.mkdir()

    monkeypatch.setenv("XDG_CACHE_HOME", str(cache_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.delenv("LSPMUX_REQUEST_TIMEOUT", raising=False)

    return {"cache": cache_dir, "config": config_dir}


@pytest.fixture
def workspace(temp_dir, isolated_config):
    dst = temp_dir / "project"
    shutil.copytree(FIXTURES_DIR / "fake_project", dst)
    return dst


@pytest_asyncio.fixture
async def tool_server_factory(workspace):
    servers: list[ToolServer] = []

    def make(*flags: str, **daemon) -> ToolServer:
        server = ToolServer(workspace, make_config(*flags, **daemon))
        servers.append(server)
        return server

    yield make

    for server in servers:
        await server.shutdown()


@pytest_asyncio.fixture
async def tools(tool_server_factory):
    return tool_server_factory()
