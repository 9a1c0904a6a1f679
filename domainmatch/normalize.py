import re
from itertools import groupby
from typing import List

from .errors import PatternError
from .stop import Stopper

APOSTROPHES = ("'", "’")

_GAP = "(.*)"


def tokenize(s: str) -> List[str]:
    s = s.lower()
    # "Tom's of Maine" should give "toms", not "tom" + "s"
    for apostrophe in APOSTROPHES:
        s = s.replace(apostrophe, "")
    # A word is a maximal run of characters for which str.isalpha holds
    return ["".join(run) for is_letter, run in groupby(s, str.isalpha) if is_letter]


def normalized_root_phrase(ref: str, stopper: Stopper) -> List[str]:
    """Turn an organization reference into its root phrase.

    "The Genco Olive Oil Company, LLP" becomes something like
    ["genco", "olive", "oil", "company", "llp"], with stop words removed
    from the left and right ends only. Interior stop words are kept.

    Trimming checks the left end first, then the right end, and stops as
    soon as neither end is a stop word. A lone remaining token is kept
    even when it is a stop word.
    """
    words = tokenize(ref)
    while len(words) > 1:
        if stopper.is_stop_word(words[0]):
            words = words[1:]
            continue
        if stopper.is_stop_word(words[-1]):
            words = words[:-1]
            continue
        break
    return words


def significant_words(words: List[str], stopper: Stopper) -> List[str]:
    """Drop every stop word, so ["sanford", "and", "son"] becomes ["sanford", "son"]."""
    return [w for w in words if not stopper.is_stop_word(w)]


def joined_phrase(words: List[str]) -> str:
    return "".join(words)


def root_pattern(words: List[str]) -> "re.Pattern[str]":
    """Compile a pattern matching ``words`` in order with anything between them.

    The words come from tokenize() and hold letters only, so they are not
    escaped. Each gap is a capture group so callers can inspect what sits
    between two matched words.
    """
    try:
        return re.compile(_GAP.join(words), re.IGNORECASE)
    except re.error as e:
        raise PatternError(f"Cannot build pattern from {words!r}: {e}") from e
