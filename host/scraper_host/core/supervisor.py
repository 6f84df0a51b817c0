"""Run the worker process and turn its output into status events and a final outcome."""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Callable, Iterator, List, Optional, Union

from scraper_host.core.config_locator import ConfigContext
from scraper_host.core.status import StatusClassifier
from scraper_host.errors import ConfigMissing
from scraper_host.etl.csv_table import extract_table
from scraper_host.models import Completed, ProcessOutcome, SearchRequest, StatusEvent
from scraper_host.vendors.worker_cli import SubprocessLauncher, build_worker_args, output_file_path

logger = logging.getLogger(__name__)

RunItem = Union[StatusEvent, ProcessOutcome]


@dataclass(frozen=True)
class LaunchPlan:
    request: SearchRequest
    args: List[str]
    cwd: Path
    output_file: Path
    config_file: Path


def ensure_config_copy(config_file: Path, workdir: Path) -> Path:
    """Make sure ``workdir`` has a copy of the config file; never overwrite an existing one."""
    target = workdir / config_file.name
    if target.exists():
        return target
    try:
        workdir.mkdir(parents=True, exist_ok=True)
        shutil.copy2(config_file, target)
    except OSError as exc:
        raise ConfigMissing(
            f"Could not copy configuration into worker directory {workdir}", detail=str(exc)
        ) from exc
    logger.info("Copied %s into worker directory %s", config_file, workdir)
    return target


def _drain(stream: IO[str]) -> str:
    return stream.read()


class ProcessSupervisor:
    """Single-flight supervisor for one worker run at a time."""

    def __init__(
        self,
        context: ConfigContext,
        launcher: Optional[SubprocessLauncher] = None,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.context = context
        self.launcher = launcher or SubprocessLauncher(context.settings.worker_command)
        self._clock = clock

    def prepare(self, request: SearchRequest) -> LaunchPlan:
        """Check preconditions and derive the command line; nothing is spawned here."""
        config_file = self.context.locator.active_config_file()
        settings = self.context.settings
        output_file = output_file_path(request, settings.documents_dir, self._clock())
        cwd = settings.worker_workdir or config_file.parent
        ensure_config_copy(config_file, cwd)
        return LaunchPlan(
            request=request,
            args=build_worker_args(request, output_file),
            cwd=cwd,
            output_file=output_file,
            config_file=config_file,
        )

    def stream(self, plan: LaunchPlan) -> Iterator[RunItem]:
        """Yield status events in worker output order, then exactly one ProcessOutcome."""
        classifier = StatusClassifier()
        classifier.reset()
        process = self.launcher.launch(plan.args, plan.cwd)
        stdout_lines: List[str] = []

        with process, ThreadPoolExecutor(max_workers=1, thread_name_prefix="worker-stderr") as executor:
            stderr_future = executor.submit(_drain, process.stderr)
            finished = False
            try:
                for line in process.stdout:
                    stdout_lines.append(line)
                    event = classifier.classify(line)
                    if event is not None:
                        yield event
                finished = True
            finally:
                if not finished:
                    logger.warning("Stopped reading worker output early; waiting for pid %s", process.pid)
                    process.stdout.close()
            exit_code = process.wait()
            stderr_text = stderr_future.result()

        stdout_text = "".join(stdout_lines)
        logger.info("Worker exited with code %s", exit_code)

        table = None
        if exit_code == 0:
            table = extract_table(stdout_text)
            yield Completed()
        else:
            logger.error("Worker failed (exit=%s): %s", exit_code, stderr_text.strip()[:500])

        yield ProcessOutcome(
            exit_code=exit_code,
            stdout_text=stdout_text,
            stderr_text=stderr_text,
            output_file_path=plan.output_file,
            table=table,
        )

    def iter_run(self, request: SearchRequest) -> Iterator[RunItem]:
        yield from self.stream(self.prepare(request))

    def run(self, request: SearchRequest, on_event: Optional[Callable[[StatusEvent], None]] = None) -> ProcessOutcome:
        """Blocking convenience wrapper that forwards events to ``on_event``."""
        outcome: Optional[ProcessOutcome] = None
        for item in self.iter_run(request):
            if isinstance(item, ProcessOutcome):
                outcome = item
            elif on_event is not None:
                on_event(item)
        if outcome is None:
            raise RuntimeError("Worker run ended without an outcome")
        return outcome
