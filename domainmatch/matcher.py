"""
Scoring engine: does a domain belong to an organization?

Responsibilities:
- Normalize the organization reference into a root phrase.
- Run a weighted battery of pass/fail tests against the domain.
- Map the point total onto [0, 1] using the weights' min and max.

Non-Responsibilities:
- No retries. A failed fetch is a failed match.
- No crawling beyond the domain's home page.

Invariant:
A Matcher is never mutated by matching, so one instance can be shared
by any number of concurrent matches.
"""

import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from rapidfuzz.distance import Levenshtein

from .errors import ConfigurationError
from .logger import get_logger
from .normalize import joined_phrase, normalized_root_phrase, root_pattern, significant_words
from .stop import DEFAULT_STOPPER, Stopper
from .web import DEFAULT_TIMEOUT, Fetcher, RequestsFetcher, SoupExtractor, TextExtractor, page_mentions

# How far the length of a misspelled substring may stray from the joined phrase.
MISSPELLING_SLACK = 2


class MatchTest(Enum):
    # Joined phrase appears as-is in the domain.
    ROOT_PHRASE = "root_phrase"
    # Some root-phrase word appears in the domain. Only when ROOT_PHRASE fails.
    ANY_ROOT_WORD = "any_root_word"
    # Joined phrase appears misspelled (edit distance 1-2). Only when ROOT_PHRASE fails.
    MISSPELLED_ROOT_PHRASE = "misspelled_root_phrase"
    # Non-stop-word text is glued onto the phrase in a domain label. Negative.
    SIGNIFICANT_AFFIXES = "significant_affixes"
    # Root phrase appears in the text of the domain's home page.
    WEB_PAGE_REF = "web_page_ref"

    @classmethod
    def parse(cls, name: str) -> "MatchTest":
        """Look up a test by value ("root_phrase") or member name ("ROOT_PHRASE")."""
        key = name.strip()
        for test in cls:
            if key == test.value or key.upper() == test.name:
                return test
        raise ValueError(f"Unknown test {name!r}; expected one of {', '.join(t.value for t in cls)}")


DEFAULT_SCORES: Dict[MatchTest, int] = {
    MatchTest.ROOT_PHRASE: 50,
    MatchTest.ANY_ROOT_WORD: 5,
    MatchTest.MISSPELLED_ROOT_PHRASE: 5,
    MatchTest.SIGNIFICANT_AFFIXES: -10,
    MatchTest.WEB_PAGE_REF: 50,
}


@dataclass(frozen=True)
class MatchResult:
    """Outcome of one match, with the evidence behind it."""

    probability: float
    score: int
    passed: FrozenSet[MatchTest] = field(default_factory=frozenset)
    root_phrase: Tuple[str, ...] = ()
    joined: str = ""

    def to_dict(self) -> dict:
        return {
            "probability": self.probability,
            "score": self.score,
            "passed": sorted(t.value for t in self.passed),
            "root_phrase": list(self.root_phrase),
            "joined": self.joined,
        }


def score_range(scores: Mapping[MatchTest, int]) -> Tuple[int, int]:
    """Lowest and highest attainable totals: sum of negatives, sum of positives."""
    low = sum(v for v in scores.values() if v < 0)
    high = sum(v for v in scores.values() if v > 0)
    return low, high


def check_scores(scores: Mapping[MatchTest, int]) -> Tuple[int, int]:
    """Return score_range(scores), raising ConfigurationError when it is empty.

    An empty range comes from no tests configured or only zero weights.
    """
    low, high = score_range(scores)
    if high == low:
        raise ConfigurationError(
            f"Cannot normalize score: weights give an empty range [{low}, {high}]"
        )
    return low, high


def normalize_score(score: int, scores: Mapping[MatchTest, int]) -> float:
    """Map a raw total onto [0, 1]."""
    low, high = check_scores(scores)
    return (score - low) / (high - low)


def contains_misspelling(domain: str, joined: str) -> bool:
    """Report whether some substring of ``domain`` is 1 or 2 edits away from ``joined``.

    Only substrings whose length is within MISSPELLING_SLACK of the phrase
    are tried. Distance 0 does not count; that is an exact match.
    """
    n = len(joined)
    for start in range(0, len(domain) - n + MISSPELLING_SLACK):
        for delta in range(-MISSPELLING_SLACK, MISSPELLING_SLACK + 1):
            end = start + n + delta
            if end > len(domain):
                break
            if end < start:
                continue
            d = Levenshtein.distance(joined, domain[start:end], score_cutoff=MISSPELLING_SLACK)
            if 1 <= d <= MISSPELLING_SLACK:
                return True
    return False


def has_significant_affixes(domain: str, pattern: "re.Pattern[str]", stopper: Stopper) -> bool:
    """Report whether a domain label carries non-stop-word text around the phrase.

    Checks the text before the match, after it and between matched words,
    e.g. "rutabaga" in "coalition-rutabaga".
    """
    for label in domain.split("."):
        m = pattern.search(label)
        if m is None:
            continue
        affixes = [label[:m.start()], label[m.end():]]
        affixes.extend(m.groups())
        for affix in affixes:
            if affix and not stopper.is_stop_word(affix):
                return True
    return False


class Matcher:
    """
    Configuration for matching: the weight of each test, the stop words,
    and the collaborators used by the home-page test.

    A test with weight 0 (or no entry) is skipped.
    """

    def __init__(
        self,
        scores: Optional[Mapping[MatchTest, int]] = None,
        stopper: Stopper = DEFAULT_STOPPER,
        timeout: float = DEFAULT_TIMEOUT,
        fetcher: Optional[Fetcher] = None,
        extractor: Optional[TextExtractor] = None,
    ):
        self.scores: Dict[MatchTest, int] = dict(DEFAULT_SCORES if scores is None else scores)
        self.stopper = stopper
        self.timeout = timeout
        self.fetcher = fetcher if fetcher is not None else RequestsFetcher()
        self.extractor = extractor if extractor is not None else SoupExtractor()

    def copy(self) -> "Matcher":
        """Return a Matcher sharing collaborators but owning its own weights."""
        return Matcher(
            scores=dict(self.scores),
            stopper=self.stopper,
            timeout=self.timeout,
            fetcher=self.fetcher,
            extractor=self.extractor,
        )

    def weight(self, test: MatchTest) -> int:
        return self.scores.get(test, 0)

    def root_phrase(self, ref: str) -> List[str]:
        return normalized_root_phrase(ref, self.stopper)

    def match(self, ref: str, domain: str, cancel: Optional[threading.Event] = None) -> float:
        """Probability in [0, 1] that ``domain`` belongs to the organization named by ``ref``."""
        return self.evaluate(ref, domain, cancel).probability

    def evaluate(self, ref: str, domain: str, cancel: Optional[threading.Event] = None) -> MatchResult:
        """Run every weighted test and return the probability with its evidence.

        Raises ConfigurationError for degenerate weights, and FetchError,
        HtmlParseError or MatchCancelled from the home-page test.
        """
        # Fail before touching the network if the result can't be normalized.
        check_scores(self.scores)

        score, passed, words, joined = self._run_tests(ref, domain, cancel)
        probability = normalize_score(score, self.scores)

        logger = get_logger()
        logger.record_match(passed)
        logger.debug(
            "Matched",
            ref=ref,
            domain=domain,
            score=score,
            probability=round(probability, 4),
            passed=sorted(t.value for t in passed),
        )
        return MatchResult(
            probability=probability,
            score=score,
            passed=frozenset(passed),
            root_phrase=tuple(words),
            joined=joined,
        )

    def _run_tests(self, ref: str, domain: str, cancel: Optional[threading.Event]):
        words = self.root_phrase(ref)

        # TODO: drop the TLD and uninteresting subdomains, so only "coalitioninc"
        # of foo.coalitioninc.com is tested (but coalition.github.io is ambiguous).
        domain = domain.lower()

        joined = joined_phrase(significant_words(words, self.stopper))
        pattern = root_pattern(words)

        score = 0
        passed = set()

        v = self.weight(MatchTest.ROOT_PHRASE)
        if v and joined in domain:
            score += v
            passed.add(MatchTest.ROOT_PHRASE)

        v = self.weight(MatchTest.ANY_ROOT_WORD)
        if v and MatchTest.ROOT_PHRASE not in passed:
            if any(word in domain for word in words):
                score += v
                passed.add(MatchTest.ANY_ROOT_WORD)

        v = self.weight(MatchTest.MISSPELLED_ROOT_PHRASE)
        if v and MatchTest.ROOT_PHRASE not in passed:
            if contains_misspelling(domain, joined):
                score += v
                passed.add(MatchTest.MISSPELLED_ROOT_PHRASE)

        v = self.weight(MatchTest.SIGNIFICANT_AFFIXES)
        if v and has_significant_affixes(domain, pattern, self.stopper):
            score += v
            passed.add(MatchTest.SIGNIFICANT_AFFIXES)

        v = self.weight(MatchTest.WEB_PAGE_REF)
        if v and page_mentions(domain, pattern, self.fetcher, self.extractor, self.timeout, cancel):
            score += v
            passed.add(MatchTest.WEB_PAGE_REF)

        return score, passed, words, joined

    def __repr__(self) -> str:
        weights = ", ".join(f"{t.value}={v}" for t, v in self.scores.items())
        return f"Matcher({weights}, timeout={self.timeout})"


_default_matcher = Matcher(DEFAULT_SCORES)


def new_matcher() -> Matcher:
    """Return a copy of the default Matcher whose weights can be changed freely."""
    return _default_matcher.copy()


def match_domain(ref: str, domain: str) -> float:
    """Match ``ref`` against ``domain`` with the default configuration."""
    return _default_matcher.match(ref, domain)
