"""Resolve a writable directory for the worker configuration file.

Candidate directories are tried in a fixed order:

1. the directory remembered from a previous run, if it still exists and is readable,
2. the primary user-data directory,
3. a fallback folder under the user's documents directory.

Writability is checked by creating and deleting a marker file instead of inspecting
permission bits, which are unreliable across platforms and installers. The first
candidate that passes becomes the active location and is cached until a write to it
fails, at which point the whole search runs again.
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from scraper_host.core.config import Settings, get_settings
from scraper_host.core.preferences import PreferenceStore
from scraper_host.errors import (
    ConfigDiskError,
    ConfigMissing,
    ConfigNotFound,
    ConfigPermissionDenied,
    NoWritableLocation,
)
from scraper_host.models import CONFIG_FILENAME, ConfigLocation

logger = logging.getLogger(__name__)

STORE_CONFIG_DIR_KEY = "config_dir"
STORE_CONFIG_KEY = "config"
API_KEY_FIELD = "api_key"

_API_KEY_PATTERN = re.compile(r"google_maps_api_key=(.+)")

ProbeResult = Tuple[bool, str]
Probe = Callable[[Path], ProbeResult]


def probe_directory(directory: Path) -> ProbeResult:
    """Return ``(True, "ok")`` when a file can be created and removed in ``directory``."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return False, f"cannot create directory: {exc}"

    marker = directory / f".write-probe-{uuid.uuid4().hex}"
    try:
        with marker.open("w", encoding="utf-8") as fh:
            fh.write("probe")
    except OSError as exc:
        return False, f"write probe failed: {exc}"

    try:
        marker.unlink()
    except OSError as exc:
        return False, f"cannot remove probe file: {exc}"
    return True, "ok"


def candidate_directories(settings: Settings, store: PreferenceStore) -> List[Path]:
    """Ordered, de-duplicated candidate directories for the configuration file."""
    ordered: List[Path] = []
    remembered = store.get(STORE_CONFIG_DIR_KEY)
    if remembered:
        remembered_path = Path(remembered)
        if remembered_path.is_dir() and os.access(remembered_path, os.R_OK):
            ordered.append(remembered_path)
        else:
            logger.info("Remembered config directory %s is gone; ignoring it", remembered_path)
    ordered.append(settings.user_data_dir)
    ordered.append(settings.fallback_config_dir)
    return _unique(ordered)


def _unique(paths: Iterable[Path]) -> List[Path]:
    unique: List[Path] = []
    seen = set()
    for path in paths:
        key = os.path.normcase(os.path.abspath(path))
        if key not in seen:
            seen.add(key)
            unique.append(path)
    return unique


def render_config(data: Mapping[str, Any]) -> str:
    api_key = data.get(API_KEY_FIELD) or ""
    return f"# Business Scraper Configuration\n[API]\ngoogle_maps_api_key={api_key}\n"


def read_api_key(config_file: Path) -> Optional[str]:
    """Extract the API key from a config file; unparsable content counts as absent."""
    try:
        content = config_file.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        logger.warning("Config file %s is not valid UTF-8; treating API key as absent", config_file)
        return None
    except OSError as exc:
        logger.warning("Unable to read config file %s: %s", config_file, exc)
        return None
    match = _API_KEY_PATTERN.search(content)
    if not match:
        return None
    return match.group(1).strip() or None


class ConfigLocator:
    def __init__(
        self,
        settings: Settings,
        store: PreferenceStore,
        *,
        candidates: Optional[Callable[[], Sequence[Path]]] = None,
        probe: Probe = probe_directory,
    ) -> None:
        self.settings = settings
        self.store = store
        self._candidates = candidates or (lambda: candidate_directories(self.settings, self.store))
        self._probe = probe
        self._active: Optional[ConfigLocation] = None

    @property
    def active(self) -> Optional[ConfigLocation]:
        return self._active

    def invalidate(self) -> None:
        self._active = None

    def resolve(self, *, refresh: bool = False, exclude: Sequence[Path] = ()) -> ConfigLocation:
        """Return the active location, probing candidates when none is cached."""
        if self._active is not None and not refresh:
            return self._active

        excluded = {os.path.normcase(os.path.abspath(path)) for path in exclude}
        attempts: List[Tuple[str, str]] = []
        for directory in self._candidates():
            if os.path.normcase(os.path.abspath(directory)) in excluded:
                attempts.append((str(directory), "write failed earlier in this session"))
                continue
            ok, reason = self._probe(directory)
            logger.debug("Probed config directory %s: %s", directory, reason)
            if ok:
                self._active = ConfigLocation(path=directory, writable=True)
                self.store.set(STORE_CONFIG_DIR_KEY, str(directory))
                logger.info("Using config directory %s", directory)
                return self._active
            attempts.append((str(directory), reason))

        self._active = None
        logger.error("No writable config directory: %s", attempts)
        raise NoWritableLocation(attempts)

    def active_config_file(self) -> Path:
        """Path of an existing config file in the active location, or ``ConfigMissing``."""
        try:
            location = self.resolve()
        except NoWritableLocation as exc:
            raise ConfigMissing("No usable configuration directory", detail=exc.detail) from exc
        config_file = location.config_file
        if not config_file.is_file():
            raise ConfigMissing(f"Configuration file not found at {config_file}")
        return config_file

    def _existing_config_file(self) -> Optional[Path]:
        try:
            config_file = self.resolve().config_file
            return config_file if config_file.is_file() else None
        except NoWritableLocation:
            # Reading still works from a read-only location.
            for directory in self._candidates():
                config_file = directory / CONFIG_FILENAME
                if config_file.is_file():
                    logger.info("Loading read-only config from %s", config_file)
                    return config_file
        return None

    def load(self) -> Dict[str, Any]:
        """Merge the stored settings with the config file; the file wins for the API key."""
        data: Dict[str, Any] = dict(self.store.get(STORE_CONFIG_KEY) or {})
        config_file = self._existing_config_file()
        if config_file is not None:
            api_key = read_api_key(config_file)
            if api_key is not None:
                data[API_KEY_FIELD] = api_key

        if config_file is None and not data:
            raise ConfigNotFound("No saved configuration found")
        return data

    def save(self, data: Mapping[str, Any]) -> ConfigLocation:
        """Write the config file, falling back to the next candidate when a write fails."""
        failed: List[Path] = []
        last_error: Optional[OSError] = None
        while True:
            try:
                location = self.resolve(refresh=bool(failed), exclude=failed)
            except NoWritableLocation as exc:
                if last_error is None:
                    raise
                raise _save_error(last_error, exc) from last_error

            try:
                location.config_file.write_text(render_config(data), encoding="utf-8")
            except OSError as exc:
                logger.warning("Failed to write %s: %s; trying next location", location.config_file, exc)
                last_error = exc
                failed.append(location.path)
                self.invalidate()
                continue

            self.store.set(STORE_CONFIG_KEY, dict(data))
            logger.info("Saved configuration to %s", location.config_file)
            return location


def _save_error(error: OSError, exhausted: NoWritableLocation) -> Exception:
    detail = f"{error}; attempts: {exhausted.detail}"
    if isinstance(error, PermissionError):
        return ConfigPermissionDenied("Permission denied when saving configuration", detail=detail)
    return ConfigDiskError(f"Failed to save configuration: {error}", detail=detail)


@dataclass
class ConfigContext:
    """Configuration state shared by the locator, the supervisor and the caller layer."""

    settings: Settings
    store: PreferenceStore
    locator: ConfigLocator

    def close(self) -> None:
        self.store.close()


def create_context(settings: Optional[Settings] = None) -> ConfigContext:
    settings = settings or get_settings()
    store = PreferenceStore(settings.preferences_path)
    return ConfigContext(settings=settings, store=store, locator=ConfigLocator(settings, store))


@contextmanager
def open_context(settings: Optional[Settings] = None) -> Iterator[ConfigContext]:
    context = create_context(settings)
    try:
        yield context
    finally:
        context.close()
