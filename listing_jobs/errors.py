"""
Exception types raised by the job orchestration service.
"""


class ConfigError(ValueError):
    """Raised when the jobs configuration file is missing or invalid."""


class CadenceError(ValueError):
    """Raised when a cadence spec is neither a cron expression nor an interval."""


class ScrapeTimeoutError(TimeoutError):
    """Raised when one external scrape request exceeds its source timeout."""

    def __init__(self, source: str, timeout_ms: int, page: int = 1):
        self.source = source
        self.timeout_ms = timeout_ms
        self.page = page
        super().__init__(f"timeout after {timeout_ms}ms ({source} page {page})")


class CleanupError(RuntimeError):
    """Raised when the dry-run phase of a cleanup fails; blocks the destructive phase."""


class CollaboratorError(RuntimeError):
    """Raised when a collaborator answers with an unsuccessful or malformed payload."""
