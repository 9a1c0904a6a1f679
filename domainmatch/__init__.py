"""Estimate whether an internet domain belongs to a named organization."""

__version__ = "0.1.0"

from .errors import (
    ConfigurationError,
    FetchError,
    HtmlParseError,
    MatchCancelled,
    MatchError,
    PatternError,
)
from .matcher import (
    DEFAULT_SCORES,
    Matcher,
    MatchResult,
    MatchTest,
    match_domain,
    new_matcher,
)
from .stop import DEFAULT_STOPPER, SimpleStopper, Stopper
