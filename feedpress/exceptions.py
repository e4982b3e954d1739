"""Error taxonomy for feedpress."""


class FeedpressError(Exception):
    """Base class for all feedpress errors."""


class ConfigurationError(FeedpressError, ValueError):
    """Feed source configuration is missing or malformed. Fatal for the run."""


class FetchError(FeedpressError):
    """A single feed could not be downloaded."""

    def __init__(self, feed_url: str, reason: str):
        super().__init__(f"Failed to fetch feed {feed_url}: {reason}")
        self.feed_url = feed_url
        self.reason = reason


class ParseError(FeedpressError):
    """A feed document or one of its entries could not be parsed."""


class ExternalServiceError(FeedpressError):
    """The reaction synthesis service is unavailable or replied badly."""
