"""Failure types raised by the caching worker."""


class WorkerError(Exception):
    """Base class for caching worker failures."""


class NetworkError(WorkerError):
    """Fetch rejected, timed out, or aborted."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class InstallError(WorkerError):
    """A static manifest entry could not be fetched during install."""

    def __init__(self, version: str, failures: dict):
        detail = ", ".join(f"{url} ({reason})" for url, reason in failures.items())
        super().__init__(f"install of version {version} failed: {detail}")
        self.version = version
        self.failures = failures


class LifecycleError(WorkerError):
    """A lifecycle transition was requested from the wrong state."""
