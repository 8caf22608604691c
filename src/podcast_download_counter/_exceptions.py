class AccessLogLineParseError(ValueError):
    """A single line of an access log does not match the expected format."""


class MissingEpisodeMetadataError(ValueError):
    """An episode was resolved but its size is unknown, so its downloads cannot be classified."""

    def __init__(self, message: str, episode_id: str | None = None):
        super().__init__(message)
        self.episode_id = episode_id


class StoreWriteError(OSError):
    """The daily counters could not be written to the store."""


class CorruptStoreError(ValueError):
    """The store exists but is not a table of daily counters, so it can be neither read nor safely replaced."""
