"""
Environment-driven settings.

DOMAINMATCH_TIMEOUT     seconds allowed for the home-page fetch (default 5)
DOMAINMATCH_LOG_LEVEL   console log level (default WARNING)
DOMAINMATCH_LOG_DIR     directory for daily log files; unset disables file logging
DOMAINMATCH_WEIGHTS     comma-separated overrides, e.g. "web_page_ref=0,any_root_word=3"
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError
from .logger import StructuredLogger, get_logger, reset_logger
from .matcher import DEFAULT_TIMEOUT, Matcher, MatchTest

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)


def parse_weights(spec: str) -> Dict[MatchTest, int]:
    """Parse "name=int,name=int" into a weight mapping.

    Names are MatchTest values ("root_phrase") or member names ("ROOT_PHRASE").
    """
    weights: Dict[MatchTest, int] = {}
    for item in spec.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ConfigurationError(f"Weight override must look like name=value: {item!r}")
        name, value = (x.strip() for x in item.split("=", 1))
        try:
            test = MatchTest.parse(name)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        try:
            weights[test] = int(value)
        except ValueError as e:
            raise ConfigurationError(f"Weight for {name} must be an integer, got {value!r}") from e
    return weights


class Settings:
    """Settings read from the environment, applied onto a Matcher."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        log_level: str = "WARNING",
        log_dir: Optional[Path] = None,
        weights: Optional[Mapping[MatchTest, int]] = None,
    ):
        self.timeout = timeout
        self.log_level = log_level
        self.log_dir = log_dir
        self.weights = dict(weights or {})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        timeout = cls._parse_float(env, "DOMAINMATCH_TIMEOUT", DEFAULT_TIMEOUT)
        if timeout <= 0:
            raise ConfigurationError(f"DOMAINMATCH_TIMEOUT must be positive, got {timeout}")

        log_level = env.get("DOMAINMATCH_LOG_LEVEL", "WARNING").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ConfigurationError(f"DOMAINMATCH_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        log_dir = env.get("DOMAINMATCH_LOG_DIR", "").strip()

        return cls(
            timeout=timeout,
            log_level=log_level,
            log_dir=Path(log_dir) if log_dir else None,
            weights=parse_weights(env.get("DOMAINMATCH_WEIGHTS", "")),
        )

    @staticmethod
    def _parse_float(env: Mapping[str, str], key: str, default: float) -> float:
        raw = env.get(key)
        if raw is None or raw.strip() == "":
            return default
        try:
            return float(raw)
        except ValueError as e:
            raise ConfigurationError(f"{key} must be a number, got {raw!r}") from e

    def apply(self, matcher: Matcher) -> Matcher:
        """Set the timeout and weight overrides on ``matcher`` and return it."""
        matcher.timeout = self.timeout
        matcher.scores.update(self.weights)
        return matcher

    def configure_logging(self) -> StructuredLogger:
        """Rebuild the global logger from these settings and return it.

        A file handler is added only when a log directory is set.
        """
        reset_logger()
        return get_logger(level=self.log_level, log_dir=self.log_dir, enable_file=self.log_dir is not None)
