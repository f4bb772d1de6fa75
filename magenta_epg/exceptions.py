"""
Error taxonomy for the feed regeneration pipeline.

Every error raised here is fatal for the current regeneration run; the
controller reports the first one and no retry is attempted.
"""


class FeedError(Exception):
    """Base class for errors that abort a regeneration run."""

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigExtractionError(FeedError):
    """The embedded app configuration could not be scraped from the landing page."""


class UpstreamRequestError(FeedError):
    """An upstream request failed in transport or returned an empty body."""


class InvalidResponseShape(FeedError):
    """An upstream payload decoded but lacks the expected keys."""
