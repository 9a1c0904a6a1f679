"""
Stop words for organization names.

A stop word is a low-information word (article, conjunction, corporate
suffix) that should not count as part of an organization's name when it
appears at the edges of a phrase or glued onto a domain label.
"""

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class Stopper(Protocol):
    """Anything that can report whether a word is a stop word."""

    def is_stop_word(self, word: str) -> bool:
        ...


class SimpleStopper:
    """Set-backed stopper. Words are compared as given (callers pass lowercase)."""

    def __init__(self, words: Iterable[str]):
        self.words = frozenset(words)

    def is_stop_word(self, word: str) -> bool:
        return word in self.words

    def __repr__(self) -> str:
        return f"SimpleStopper({sorted(self.words)!r})"


# TODO: some stop words only make sense as prefixes ("the"), some only as
# suffixes ("inc") and some only as infixes ("and").
DEFAULT_STOP_WORDS = ("the", "inc", "co", "llc", "get", "try", "and")

DEFAULT_STOPPER = SimpleStopper(DEFAULT_STOP_WORDS)
