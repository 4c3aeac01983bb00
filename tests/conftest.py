import io
import tarfile
import zipfile
from pathlib import Path

import platformdirs
import pytest
import requests

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """Register the markers used across the suite."""
    for marker in (
        "unit: fast tests of a single module",
        "integration: tests exercising several modules together",
        "user_interface: tests of operator prompts and menus",
    ):
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs, the config module and environment variables at a temporary layout.

    Sets CSINSTALLER_DISABLE_FILE_LOGGING, removes GITHUB_TOKEN and patches the
    platformdirs user_* functions plus csinstaller.config's CONFIG_DIR/CONFIG_FILE.
    """
    base = tmp_path_factory.mktemp("csinstaller")
    config_dir = base / "config"
    log_dir = base / "log"
    cache_dir = base / "cache"
    for path in (config_dir, log_dir, cache_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("CSINSTALLER_DISABLE_FILE_LOGGING", "1")
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )

    import csinstaller.config as config_module

    monkeypatch.setattr(config_module, "CONFIG_DIR", str(config_dir))
    monkeypatch.setattr(
        config_module,
        "CONFIG_FILE",
        str(config_dir / config_module.CONFIG_FILE_NAME),
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.head = _block_network
    requests.Session.request = _block_network


def write_zip(path: Path, members: dict) -> Path:
    """Create a zip at `path` holding `members` (name -> bytes or str)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def write_tar_gz(path: Path, members: dict) -> Path:
    """Create a gzip-compressed tar at `path` holding `members` (name -> bytes)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, content in members.items():
            data = content.encode() if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o755
            tf.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def tag_records():
    """
    Tag records shaped like the GitHub git/refs/tags API response.

    Includes the six releases of the reference ranking scenario and one tag that
    does not follow the version pattern.
    """
    names = [
        "v2.9.8-Devel",
        "v4.2.0-Prod",
        "v3.0.0-Devel",
        "v4.1.0-Prod",
        "v2.9.9-Devel",
        "v4.2.1-Prod",
        "not-a-version",
    ]
    return [
        {
            "ref": f"refs/tags/{name}",
            "node_id": f"node-{i}",
            "object": {"sha": f"{i:040d}", "type": "commit"},
        }
        for i, name in enumerate(names)
    ]
