"""Turn free-form worker log lines into structured status events.

Rules are evaluated top to bottom and the first matching rule decides the outcome.
The vocabulary of the worker's messages overlaps ("Found", "Scraping", "failed"),
so the order of ``RULES`` is part of the behaviour:

1. anything mentioning "error" or "failed"          -> Error
2. ``Searching for`` together with "in"             -> SearchingMaps
3. ``Max results:`` / ``Web scraping:`` echoes      -> suppressed
4. ``Found N businesses``                           -> MapsFound, progress reset to 0/N
5. ``Enhanced N businesses with website data``      -> ScrapingComplete
6. ``Enhancing N businesses`` / ``Scraping N ...``  -> ScrapingStarted
7. ``Enhancing`` / ``Scraping`` / ``Processing:``   -> ScrapingProgress (or Raw before a total is known)
8. ``Results saved to:``                            -> no event, sets the "finalizing" detail
9. ``No businesses found``                          -> NoResults
10. anything else                                   -> Raw while searching, otherwise dropped

The error rule comes first, so any line containing "error" or "failed" is an
Error in every phase, including search banners and configuration echoes, and a
business name containing "failed" is reported as an error too.

The "in" check is a plain substring test; "Searching" itself contains it, so
every "Searching for ..." line starts the search phase.

Rule 6 is an extension for the worker's "Enhancing N businesses" banner. It only
adopts N as the progress total when "Found N" has not set one, and it never
resets the running count. Classification never raises.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, NamedTuple, Optional

from scraper_host.models import (
    Error,
    Idle,
    MapsFound,
    NoResults,
    Raw,
    ScrapingComplete,
    ScrapingProgress,
    ScrapingProgressEvent,
    ScrapingStarted,
    SearchingMaps,
    StatusEvent,
)

logger = logging.getLogger(__name__)

PHASE_IDLE = "idle"
PHASE_SEARCHING = "searching"
PHASE_COMPLETE = "complete"
PHASE_ERROR = "error"

FINALIZING_DETAIL = "Finalizing results..."
COLLECTING_DETAIL = "Collecting additional business information..."

_FOUND = re.compile(r"Found (\d+) businesses")
_ENHANCED = re.compile(r"Enhanced (\d+) businesses")
_STARTED = re.compile(r"(?:Enhancing|Scraping) (\d+) businesses")
_PROCESSING_NAME = re.compile(r"Processing:\s*(.+?)\.{3}")
_ENHANCING_NAME = re.compile(r"(?:Enhancing|Scraping)\s+[\"']?([^\"'.]+?)[\"']?\s*(?:\.\.\.|\.+|$)")


class Rule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    apply: Callable[["StatusClassifier", str], Optional[StatusEvent]]


def _searching(classifier: "StatusClassifier", line: str) -> StatusEvent:
    classifier.phase = PHASE_SEARCHING
    return SearchingMaps()


def _suppress(classifier: "StatusClassifier", line: str) -> None:
    return None


def _error(classifier: "StatusClassifier", line: str) -> StatusEvent:
    classifier.phase = PHASE_ERROR
    return Error(message=line)


def _found(classifier: "StatusClassifier", line: str) -> Optional[StatusEvent]:
    match = _FOUND.search(line)
    if not match:
        return None
    count = int(match.group(1))
    classifier.progress.reset(total=count)
    classifier.phase = PHASE_SEARCHING
    return MapsFound(count=count)


def _enhanced(classifier: "StatusClassifier", line: str) -> Optional[StatusEvent]:
    match = _ENHANCED.search(line)
    if not match:
        return None
    classifier.phase = PHASE_SEARCHING
    return ScrapingComplete(enhanced=int(match.group(1)))


def _started(classifier: "StatusClassifier", line: str) -> StatusEvent:
    total = int(_STARTED.search(line).group(1))
    if classifier.progress.total == 0:
        classifier.progress.total = total
    classifier.phase = PHASE_SEARCHING
    return ScrapingStarted(total=total)


def extract_business_name(line: str) -> Optional[str]:
    for pattern in (_PROCESSING_NAME, _ENHANCING_NAME):
        match = pattern.search(line)
        if match:
            name = match.group(1).strip()
            if name:
                return name
    return None


def _progress(classifier: "StatusClassifier", line: str) -> StatusEvent:
    classifier.phase = PHASE_SEARCHING
    progress = classifier.progress
    name = extract_business_name(line)
    if name is None and progress.total == 0:
        logger.debug("Could not extract business name from %r", line)
        return Raw(message=COLLECTING_DETAIL)
    progress.current += 1
    return ScrapingProgressEvent(current=progress.current, total=progress.total, label=name)


def _results_saved(classifier: "StatusClassifier", line: str) -> None:
    if classifier.phase == PHASE_SEARCHING:
        classifier.detail = FINALIZING_DETAIL
    return None


def _no_results(classifier: "StatusClassifier", line: str) -> StatusEvent:
    classifier.phase = PHASE_COMPLETE
    return NoResults()


def _fallback(classifier: "StatusClassifier", line: str) -> Optional[StatusEvent]:
    if classifier.phase == PHASE_SEARCHING:
        return Raw(message=line)
    return None


RULES: List[Rule] = [
    Rule("error", lambda line: "error" in line.lower() or "failed" in line.lower(), _error),
    Rule("searching", lambda line: "Searching for" in line and "in" in line, _searching),
    Rule("config_echo", lambda line: "Max results:" in line or "Web scraping:" in line, _suppress),
    Rule("found", lambda line: "Found" in line and "businesses" in line, _found),
    Rule("enhanced", lambda line: "Enhanced" in line and "businesses with website data" in line, _enhanced),
    Rule("started", lambda line: bool(_STARTED.search(line)), _started),
    Rule(
        "progress",
        lambda line: "Enhancing" in line or "Scraping" in line or "Processing:" in line,
        _progress,
    ),
    Rule("results_saved", lambda line: "Results saved to:" in line, _results_saved),
    Rule("no_results", lambda line: "No businesses found" in line, _no_results),
    Rule("fallback", lambda line: True, _fallback),
]


class StatusClassifier:
    """Stateful line classifier; use one instance per search run."""

    def __init__(self, rules: Optional[List[Rule]] = None) -> None:
        self.rules = list(rules if rules is not None else RULES)
        self.progress = ScrapingProgress()
        self.phase = PHASE_IDLE
        self.detail: Optional[str] = None

    def reset(self) -> StatusEvent:
        self.progress.reset()
        self.phase = PHASE_IDLE
        self.detail = None
        return Idle()

    def match_rule(self, line: str) -> Optional[Rule]:
        return next((rule for rule in self.rules if rule.matches(line)), None)

    def classify(self, line: str) -> Optional[StatusEvent]:
        """Classify one output line; returns ``None`` when the line produces no event."""
        line = line.strip()
        if not line:
            return None
        rule = self.match_rule(line)
        if rule is None:
            return None
        event = rule.apply(self, line)
        logger.debug("Classified %r via %s -> %s", line, rule.name, event)
        return event
