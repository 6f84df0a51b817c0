import sys
from pathlib import Path

import pytest

# Ensure `scraper_host` package is importable when running pytest from the host directory.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from scraper_host.core.config import Settings  # noqa: E402
from scraper_host.core.config_locator import create_context  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    return Settings(
        user_data_dir=tmp_path / "userdata",
        documents_dir=tmp_path / "documents",
        desktop_dir=tmp_path / "desktop",
        downloads_dir=tmp_path / "downloads",
        worker_command=(sys.executable,),
        result_read_delay=0.0,
    )


@pytest.fixture
def context(settings):
    ctx = create_context(settings)
    yield ctx
    ctx.close()
