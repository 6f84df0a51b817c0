"""Caller-facing operations: configuration, searches and result files."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional

from scraper_host.core.config_locator import API_KEY_FIELD, ConfigContext
from scraper_host.core.supervisor import LaunchPlan, ProcessSupervisor, RunItem
from scraper_host.errors import ConfigNotFound, SearchInProgress
from scraper_host.etl.csv_table import load_result_table, read_table_file
from scraper_host.models import BusinessRecord, ConfigLocation, Idle, ProcessOutcome, SearchRequest, StatusEvent

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "YOUR_API_KEY_HERE"


def is_valid_api_key(api_key: Optional[str]) -> bool:
    if not api_key:
        return False
    stripped = api_key.strip()
    return bool(stripped) and stripped != PLACEHOLDER_API_KEY


class SearchSession:
    """Iterable over one search's events and outcome; holds the single-flight slot until closed."""

    def __init__(self, service: "ScraperService", plan: LaunchPlan) -> None:
        self._service = service
        self.plan = plan
        self._closed = False

    def __iter__(self) -> Iterator[RunItem]:
        try:
            for item in self._service.supervisor.stream(self.plan):
                if isinstance(item, ProcessOutcome):
                    item = self._service.attach_result_file(item)
                else:
                    self._service.last_event = item
                yield item
        finally:
            self.close()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._service.release()


class ScraperService:
    def __init__(
        self,
        context: ConfigContext,
        supervisor: Optional[ProcessSupervisor] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.context = context
        self.supervisor = supervisor or ProcessSupervisor(context)
        self._sleep = sleep
        self._search_lock = threading.Lock()
        self.last_event: StatusEvent = Idle()

    # ---------- Paths & configuration ----------

    def output_directories(self) -> Dict[str, str]:
        settings = self.context.settings
        return {
            "userData": str(settings.user_data_dir),
            "documents": str(settings.documents_dir),
            "desktop": str(settings.desktop_dir),
            "downloads": str(settings.downloads_dir),
        }

    def save_config(self, api_key: str) -> ConfigLocation:
        return self.context.locator.save({API_KEY_FIELD: api_key})

    def load_config(self) -> Optional[str]:
        try:
            data = self.context.locator.load()
        except ConfigNotFound:
            return None
        return data.get(API_KEY_FIELD) or None

    def api_key_status(self) -> Dict[str, object]:
        api_key = self.load_config()
        return {"api_key": api_key, "valid": is_valid_api_key(api_key)}

    # ---------- Searches ----------

    @property
    def busy(self) -> bool:
        return self._search_lock.locked()

    def status(self) -> StatusEvent:
        return self.last_event

    def release(self) -> None:
        self._search_lock.release()

    def start_search(self, request: SearchRequest) -> SearchSession:
        """Validate preconditions and reserve the search slot; iterate the session to run it."""
        if not self._search_lock.acquire(blocking=False):
            raise SearchInProgress("A search is already running")
        try:
            plan = self.supervisor.prepare(request)
        except Exception:
            self._search_lock.release()
            raise
        self.last_event = Idle()
        return SearchSession(self, plan)

    def run_search(
        self, request: SearchRequest, on_event: Optional[Callable[[StatusEvent], None]] = None
    ) -> ProcessOutcome:
        outcome: Optional[ProcessOutcome] = None
        for item in self.start_search(request):
            if isinstance(item, ProcessOutcome):
                outcome = item
            elif on_event is not None:
                on_event(item)
        if outcome is None:
            raise RuntimeError("Search ended without an outcome")
        return outcome

    def attach_result_file(self, outcome: ProcessOutcome) -> ProcessOutcome:
        """Fall back to the result file when stdout carried no table."""
        if not outcome.succeeded or outcome.table is not None:
            return outcome
        if outcome.output_file_path.suffix.lower() != ".csv":
            return outcome

        settings = self.context.settings
        logger.info("Falling back to result file %s", outcome.output_file_path)
        table = load_result_table(
            outcome.output_file_path,
            attempts=settings.result_read_attempts,
            delay=settings.result_read_delay,
            sleep=self._sleep,
        )
        if table is None:
            return outcome
        return dataclasses.replace(outcome, table=table)

    def read_result_file(self, path: Path) -> List[BusinessRecord]:
        return read_table_file(Path(path))
