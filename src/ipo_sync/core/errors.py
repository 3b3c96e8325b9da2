"""Exception types shared by the sources, the engine and the adapters."""


class IpoSyncError(RuntimeError):
    """Base class for errors raised by ipo_sync."""


class SourceFetchError(IpoSyncError):
    """An external source could not be reached or answered with an HTTP error."""


class MalformedSourceError(IpoSyncError):
    """An external source answered, but not in a shape we can use."""


class PersistenceError(IpoSyncError):
    """The database adapter was used incorrectly or is unavailable."""


class ConfigError(IpoSyncError):
    """Invalid runtime configuration."""
