"""Exceptions raised while matching a reference string against a domain."""


class MatchError(Exception):
    """Base class for every error a match can raise."""
    pass


class ConfigurationError(MatchError):
    """Raised when the weights or settings cannot produce a probability."""
    pass


class PatternError(MatchError):
    """Raised when the root-phrase pattern cannot be compiled."""
    pass


class FetchError(MatchError):
    """Raised when the home page cannot be fetched or its headers are unusable."""
    pass


class HtmlParseError(MatchError):
    """Raised when the home page body cannot be turned into text."""
    pass


class MatchCancelled(MatchError):
    """Raised when the caller cancels a match that is waiting on the network."""
    pass
