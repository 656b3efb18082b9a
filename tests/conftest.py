"""Shared fixtures for the Cratepanel test suite."""

import io
import os
import tempfile
import textwrap
import zipfile
from pathlib import Path

# The config module reads CRATEPANEL_CONFIG on import, so this has to come first.
_CONFIG_DIR = Path(tempfile.mkdtemp(prefix='cratepanel-config-'))
(_CONFIG_DIR / 'config.toml').write_text(
    '[rate_limits]\nenabled = false\n\n[advanced]\nlog_level = "WARNING"\n',
    encoding='UTF-8'
)
os.environ['CRATEPANEL_CONFIG'] = str(_CONFIG_DIR)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from cratepanel import Cratepanel  # noqa: E402

REPO_ROOT = Path(__file__).absolute().parent.parent
ROUTERS_PATH = REPO_ROOT / 'routers'


@pytest.fixture()
def instances_path(tmp_path: Path) -> Path:
    path = tmp_path / 'instances'
    path.mkdir()
    return path


@pytest.fixture()
def plugins_path(tmp_path: Path) -> Path:
    path = tmp_path / 'plugins'
    path.mkdir()
    return path


@pytest.fixture()
def temp_path(tmp_path: Path) -> Path:
    """Scratch directory for archives. Not created up front."""
    return tmp_path / 'temp'


@pytest.fixture()
def srv42(instances_path: Path) -> Path:
    """The instance from the docs: a config file and a world save."""
    root = instances_path / 'srv-42'
    (root / 'world').mkdir(parents=True)
    (root / 'config.yml').write_text('motd: hello\nmax-players: 20\n', encoding='UTF-8')
    (root / 'world' / 'level.dat').write_bytes(bytes(range(256)) * 8)
    return root


@pytest.fixture()
def write_plugin(plugins_path: Path):
    """Create a plugin directory. `routes` and `views` map relative paths to file contents."""

    def _write(directory: str, descriptor: str | None, routes: dict | None = None, views: dict | None = None) -> Path:
        root = plugins_path / directory
        root.mkdir()

        if descriptor is not None:
            (root / 'plugin.toml').write_text(textwrap.dedent(descriptor), encoding='UTF-8')

        for sub, files in (('routes', routes), ('views', views)):
            for relative, content in (files or {}).items():
                path = root / sub / relative
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(textwrap.dedent(content), encoding='UTF-8')

        return root

    return _write


@pytest.fixture()
def zip_bytes():
    """Build an in-memory zip from a mapping of entry name to content."""

    def _build(entries: dict) -> bytes:
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w') as zf:
            for name, content in entries.items():
                zf.writestr(name, content)
        return buffer.getvalue()

    return _build


@pytest.fixture()
def make_app(instances_path: Path, plugins_path: Path, temp_path: Path):
    def _make(**overrides) -> Cratepanel:
        options = {
            "instances_path": instances_path,
            "plugins_path": plugins_path,
            "routers_path": ROUTERS_PATH,
            "temp_path": temp_path,
        }
        options.update(overrides)
        return Cratepanel(**options)

    return _make


@pytest.fixture()
def client(make_app):
    """Test client for a panel with no plugins. Entering it runs the startup composition."""
    with TestClient(make_app()) as test_client:
        yield test_client
