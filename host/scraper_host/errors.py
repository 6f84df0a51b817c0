"""Error taxonomy shared by the configuration, table and supervision layers."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

PERMISSION_HINT = (
    "This can happen with restricted installations (for example MSI installs) "
    "where the application data folder is read-only. Try running the application "
    "once as administrator, or reinstall it for the current user only."
)


class ScraperHostError(RuntimeError):
    """Base error carrying a short classification plus the raw diagnostic."""

    classification = "error"

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.detail = detail if detail is not None else message

    def user_message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {
            "error": self.classification,
            "message": self.user_message(),
            "detail": self.detail,
        }


class ConfigMissing(ScraperHostError):
    classification = "config_missing"

    def user_message(self) -> str:
        return (
            "Configuration file not found. Please set up your Google Maps API key first. "
            f"{PERMISSION_HINT}\n\nTechnical details: {self.detail}"
        )


class ConfigNotFound(ScraperHostError):
    classification = "config_not_found"


class NoWritableLocation(ScraperHostError):
    """Every candidate configuration directory failed the write probe."""

    classification = "no_writable_location"

    def __init__(self, attempts: Sequence[Tuple[str, str]]) -> None:
        self.attempts: List[Tuple[str, str]] = list(attempts)
        detail = "; ".join(f"{path}: {reason}" for path, reason in self.attempts)
        super().__init__("No writable configuration location found", detail=detail or "no candidates")

    def user_message(self) -> str:
        tried = "\n".join(f"  - {path} ({reason})" for path, reason in self.attempts)
        return f"{self}. Tried:\n{tried}\n\n{PERMISSION_HINT}"


class ConfigPermissionDenied(ScraperHostError):
    classification = "permission_denied"

    def user_message(self) -> str:
        return (
            f"Permission denied when saving configuration. {PERMISSION_HINT}"
            f"\n\nTechnical details: {self.detail}"
        )


class ConfigDiskError(ScraperHostError):
    classification = "disk_error"


class SpawnFailure(ScraperHostError):
    classification = "spawn_failure"

    def __init__(self, executable: str, detail: str) -> None:
        super().__init__(f"Failed to start search process {executable}: {detail}", detail=detail)
        self.executable = executable


class WorkerExitFailure(ScraperHostError):
    classification = "worker_exit_failure"

    def __init__(self, exit_code: int, stderr: str) -> None:
        message = stderr.strip() or "Unknown error occurred"
        super().__init__(message, detail=stderr)
        self.exit_code = exit_code


class SearchInProgress(ScraperHostError):
    classification = "search_in_progress"


class TooFewRows(ScraperHostError):
    classification = "too_few_rows"


class MalformedRow(ScraperHostError):
    classification = "malformed_row"
