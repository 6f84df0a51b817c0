"""Application configuration helpers."""

import logging
import os
import shlex
import shutil
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COMMAND = "business_scraper"
APP_DIR_NAME = "BusinessScraper"


@dataclass(frozen=True)
class Settings:
    user_data_dir: Path
    documents_dir: Path
    desktop_dir: Path
    downloads_dir: Path
    worker_command: Tuple[str, ...] = (DEFAULT_WORKER_COMMAND,)
    worker_workdir: Optional[Path] = None
    server_port: int = 9000
    result_read_attempts: int = 3
    result_read_delay: float = 0.2
    preferences_filename: str = field(default="preferences.json")

    @property
    def preferences_path(self) -> Path:
        return self.user_data_dir / self.preferences_filename

    @property
    def fallback_config_dir(self) -> Path:
        return self.documents_dir / APP_DIR_NAME


def _default_user_data_dir(home: Path) -> Path:
    appdata = os.getenv("APPDATA")
    if appdata:
        return Path(appdata) / APP_DIR_NAME
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    base = Path(xdg_config) if xdg_config else home / ".config"
    return base / "business-scraper"


def _path_from_env(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    return Path(raw).expanduser() if raw else default


def parse_worker_command(raw: str) -> Tuple[str, ...]:
    parts = tuple(shlex.split(raw, posix=os.name != "nt"))
    return parts or (DEFAULT_WORKER_COMMAND,)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    home = Path.home()
    user_data_dir = _path_from_env("SCRAPER_USER_DATA_DIR", _default_user_data_dir(home))
    documents_dir = _path_from_env("SCRAPER_DOCUMENTS_DIR", home / "Documents")
    desktop_dir = _path_from_env("SCRAPER_DESKTOP_DIR", home / "Desktop")
    downloads_dir = _path_from_env("SCRAPER_DOWNLOADS_DIR", home / "Downloads")
    worker_command = parse_worker_command(os.getenv("SCRAPER_WORKER_COMMAND", DEFAULT_WORKER_COMMAND))
    workdir_raw = os.getenv("SCRAPER_WORKER_WORKDIR", "").strip()
    worker_workdir = Path(workdir_raw).expanduser() if workdir_raw else None
    server_port = int(os.getenv("SCRAPER_PORT", "9000"))
    result_read_attempts = int(os.getenv("SCRAPER_RESULT_READ_ATTEMPTS", "3"))
    result_read_delay = float(os.getenv("SCRAPER_RESULT_READ_DELAY", "0.2"))

    executable = worker_command[0]
    if shutil.which(executable) is None and not Path(executable).is_file():
        logger.warning("Worker executable %s was not found; searches will fail to start.", executable)
    if result_read_attempts < 1:
        logger.warning("SCRAPER_RESULT_READ_ATTEMPTS=%s is invalid; using 1.", result_read_attempts)
        result_read_attempts = 1

    return Settings(
        user_data_dir=user_data_dir,
        documents_dir=documents_dir,
        desktop_dir=desktop_dir,
        downloads_dir=downloads_dir,
        worker_command=worker_command,
        worker_workdir=worker_workdir,
        server_port=server_port,
        result_read_attempts=result_read_attempts,
        result_read_delay=result_read_delay,
    )
