"""Error taxonomy shared by the sync pipeline, its clients and the read API."""
from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by Catalyst Monitor."""


class ConfigurationError(MonitorError):
    """Project missing from the static configuration, or configured without a wallet."""


class NotFoundError(MonitorError):
    """The backend has no proposal record for a configured project."""


class UpstreamFetchError(MonitorError):
    """A milestone-API, indexer or price call failed or returned unusable data."""
    def __init__(self, message: str, endpoint: str = ""):
        super().__init__(message)
        self.endpoint = endpoint


class PersistenceError(MonitorError):
    """Writing an output table or the summary document failed."""
    def __init__(self, message: str, table: str = ""):
        super().__init__(message)
        self.table = table


class NotificationError(MonitorError):
    """Posting to the messaging webhook failed."""
