"""Launch helpers for the external business_scraper worker executable."""

import logging
import os
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from scraper_host.errors import SpawnFailure
from scraper_host.models import SearchRequest

logger = logging.getLogger(__name__)

OUTPUT_FILE_PREFIX = "business-results"


def output_file_path(request: SearchRequest, default_dir: Path, now: Optional[datetime] = None) -> Path:
    """Result file path: ``<dir>/business-results-<sortable timestamp>.<format>``."""
    now = now or datetime.now(timezone.utc)
    timestamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    directory = Path(request.output_directory) if request.output_directory else default_dir
    return directory / f"{OUTPUT_FILE_PREFIX}-{timestamp}.{request.output_format}"


def build_worker_args(request: SearchRequest, output_file: Path) -> List[str]:
    args = [
        "-k", request.keyword,
        "-l", request.location,
        "-r", str(int(request.max_results)),
        "-f", request.output_format,
    ]
    if not request.enable_web_scraping:
        args.append("--no-web-scraping")
    args.extend(["-o", str(output_file)])
    return args


class SubprocessLauncher:
    """Start the worker with piped, line-buffered text streams."""

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ValueError("Worker command must not be empty")
        self.command = list(command)

    @property
    def executable(self) -> str:
        return self.command[0]

    def launch(self, args: Sequence[str], cwd: Path) -> subprocess.Popen:
        argv = [*self.command, *args]
        logger.info("Starting worker: %s (cwd=%s)", subprocess.list2cmdline(argv), cwd)
        try:
            return subprocess.Popen(
                argv,
                cwd=str(cwd),
                env=os.environ.copy(),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except OSError as exc:
            logger.error("Failed to start worker %s: %s", self.executable, exc)
            raise SpawnFailure(self.executable, str(exc)) from exc
