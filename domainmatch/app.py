import argparse
import json
from typing import List, Optional

from . import __version__
from .config import Settings, load_env, parse_weights
from .errors import ConfigurationError, MatchError
from .logger import get_logger
from .matcher import Matcher, MatchResult, MatchTest, new_matcher
from .retry import retry_fetch


def build_matcher(args: argparse.Namespace, settings: Optional[Settings] = None) -> Matcher:
    """Default matcher, then environment settings, then command-line flags."""
    if settings is None:
        settings = Settings.from_env()
    matcher = settings.apply(new_matcher())
    if getattr(args, "timeout", None) is not None:
        if args.timeout <= 0:
            raise ConfigurationError(f"--timeout must be positive, got {args.timeout}")
        matcher.timeout = args.timeout
    for item in getattr(args, "weight", None) or []:
        matcher.scores.update(parse_weights(item))
    if getattr(args, "offline", False):
        matcher.scores[MatchTest.WEB_PAGE_REF] = 0
    return matcher


def evaluate_with_retry(matcher: Matcher, ref: str, domain: str, retries: int) -> MatchResult:
    """Evaluate, retrying only when the home-page fetch fails."""
    if retries < 0:
        raise ConfigurationError(f"--retries must be >= 0, got {retries}")
    logger = get_logger()

    def on_retry(attempt, exc, delay):
        logger.warning("Retrying match", domain=domain, attempt=attempt, delay=delay, error=str(exc))

    return retry_fetch(lambda: matcher.evaluate(ref, domain), retries=retries, on_retry=on_retry)


def format_result(ref: str, domain: str, result: MatchResult, as_json: bool) -> str:
    if as_json:
        return json.dumps({"ref": ref, "domain": domain, **result.to_dict()})
    passed = ", ".join(sorted(t.value for t in result.passed)) or "none"
    return f"{result.probability:.4f}\t{domain}\t(score {result.score}; passed: {passed})"


def cmd_match(args: argparse.Namespace, settings: Optional[Settings] = None) -> None:
    matcher = build_matcher(args, settings)
    result = evaluate_with_retry(matcher, args.ref, args.domain, args.retries)
    print(format_result(args.ref, args.domain, result, args.json))


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(prog="domainmatch", description="Score how likely a domain belongs to an organization")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    mat = subparsers.add_parser("match", help="Match one organization reference against one domain")
    mat.add_argument("ref", help="Organization reference, e.g. \"The Genco Olive Oil Company, LLP\"")
    mat.add_argument("domain", help="Domain name, e.g. gencooliveoil.com")
    mat.add_argument("--offline", action="store_true", help="Skip the home-page test (no network)")
    mat.add_argument("--timeout", type=float, help="Seconds allowed for the home-page fetch (or set DOMAINMATCH_TIMEOUT)")
    mat.add_argument("--weight", action="append", metavar="NAME=VALUE", help="Override a test weight, e.g. any_root_word=3 (repeatable)")
    mat.add_argument("--retries", type=int, default=0, help="Retry a failed home-page fetch this many times (default 0)")
    mat.add_argument("--json", action="store_true", help="Print the result and its evidence as JSON")
    mat.set_defaults(func=cmd_match)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        try:
            # Load .env if present (DOMAINMATCH_TIMEOUT, DOMAINMATCH_LOG_LEVEL, etc.)
            load_env()
            settings = Settings.from_env()
            settings.configure_logging()
            args.func(args, settings)
        except MatchError as e:
            raise SystemExit(f"Error: {e}")
        return

    parser.print_help()


if __name__ == "__main__":
    main()
