"""Error types shared by the request and aggregation paths."""


class DeskflowApiError(Exception):
    """Base error for this worker."""

    def __init__(self, message: str = "Server error"):
        self.message = message
        super().__init__(self.message)


class NotFoundError(DeskflowApiError):
    """The release source returned nothing usable. Rendered as a 404."""


class NoReleasesError(NotFoundError):
    def __init__(self, message: str = "No releases found"):
        super().__init__(message)


class OnlyContinuousError(NotFoundError):
    def __init__(self, message: str = "No releases found (except continuous)"):
        super().__init__(message)


class UpstreamError(DeskflowApiError):
    """The release listing request failed or returned an unexpected payload."""


class StoreWriteError(DeskflowApiError):
    """A store rejected a write, e.g. because a daily quota was exhausted."""


class MetadataError(DeskflowApiError):
    """A cached record is missing metadata it must always carry."""


class AggregationError(DeskflowApiError):
    """Failure on the popularity contest path. Logged, never shown to clients."""


class UserAgentError(AggregationError):
    """A structured identity string could not be decomposed."""


class ConfigurationError(AggregationError):
    """A header required for aggregation is missing."""
