class ArianeError(Exception):
    """Base exception for errors raised while handling a webhook event."""


class ParseError(ArianeError):
    """Raised when a webhook payload does not have the expected shape."""


class NotFoundError(ArianeError):
    """Raised when a pull request or workflow referenced by an event is missing."""


class ConfigError(ArianeError):
    """Raised when the repository configuration cannot be loaded."""


class InvalidConfig(ConfigError):
    raw_config: str
    source_url: str

    def __init__(self, *args, **kwargs):
        self.raw_config = kwargs.pop("raw_config")
        self.source_url = kwargs.pop("source_url", None)
        super().__init__(*args, **kwargs)
