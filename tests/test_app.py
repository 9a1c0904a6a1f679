"""
Tests for the command-line interface.
"""

import json
import os

import pytest

from domainmatch import __version__, app
from domainmatch.errors import FetchError
from domainmatch.logger import reset_logger
from domainmatch.matcher import MatchTest


ENV_KEYS = ("DOMAINMATCH_TIMEOUT", "DOMAINMATCH_WEIGHTS", "DOMAINMATCH_LOG_LEVEL", "DOMAINMATCH_LOG_DIR")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """No stray .env or DOMAINMATCH_* settings leak into or out of CLI runs."""
    monkeypatch.chdir(tmp_path)
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for key in ENV_KEYS:
        os.environ.pop(key, None)
    reset_logger()


class TestMatchCommand:
    """Test `domainmatch match`."""

    def test_offline_match(self, capsys):
        app.main(["match", "Coalition, Inc", "coalitioninc.com", "--offline"])
        out = capsys.readouterr().out
        # Range [-10, 60], score 50
        assert out.startswith("0.8571\tcoalitioninc.com")
        assert "passed: root_phrase" in out

    def test_json_output(self, capsys):
        app.main(["match", "Coalition, Inc", "coalition-rutabaga.com", "--offline", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["ref"] == "Coalition, Inc"
        assert data["score"] == 40
        assert data["passed"] == ["root_phrase", "significant_affixes"]
        assert data["root_phrase"] == ["coalition"]

    def test_weight_overrides(self, capsys):
        app.main([
            "match", "Coalition Security, Inc.", "coalition.com", "--offline", "--json",
            "--weight", "any_root_word=20", "--weight", "significant_affixes=0",
        ])
        data = json.loads(capsys.readouterr().out)
        assert data["score"] == 20
        # Range [0, 75]
        assert data["probability"] == pytest.approx(20 / 75)

    def test_env_weights(self, capsys, monkeypatch):
        monkeypatch.setenv("DOMAINMATCH_WEIGHTS", "web_page_ref=0,root_phrase=10")
        app.main(["match", "Coalition", "coalition.com", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["score"] == 10

    def test_bad_weight_exits(self):
        with pytest.raises(SystemExit, match="Error"):
            app.main(["match", "Coalition", "coalition.com", "--weight", "bogus=1"])

    def test_bad_timeout_exits(self):
        with pytest.raises(SystemExit, match="timeout"):
            app.main(["match", "Coalition", "coalition.com", "--timeout", "0"])

    def test_fetch_failure_is_retried_then_reported(self, monkeypatch):
        calls = []

        class DownFetcher:
            def fetch(self, domain, timeout, cancel=None):
                calls.append(domain)
                raise FetchError("connection refused")

        real_build = app.build_matcher

        def build(args, settings=None):
            matcher = real_build(args, settings)
            matcher.fetcher = DownFetcher()
            return matcher

        monkeypatch.setattr(app, "build_matcher", build)
        monkeypatch.setattr("domainmatch.retry.time.sleep", lambda s: None)

        with pytest.raises(SystemExit, match="Error: connection refused"):
            app.main(["match", "Coalition", "coalition.com", "--retries", "2"])
        assert calls == ["coalition.com"] * 3

    def test_negative_retries_exits(self):
        with pytest.raises(SystemExit, match="--retries"):
            app.main(["match", "Coalition", "coalition.com", "--offline", "--retries", "-1"])


class TestLoggingSettings:
    """DOMAINMATCH_LOG_* settings reach the logger the CLI uses."""

    def test_dotenv_log_level_enables_debug(self, capsys, tmp_path):
        (tmp_path / ".env").write_text("DOMAINMATCH_LOG_LEVEL=DEBUG\n", encoding="utf-8")
        app.main(["match", "Coalition, Inc", "coalitioninc.com", "--offline"])
        captured = capsys.readouterr()
        assert "Matched" in captured.err
        assert "coalitioninc.com" in captured.err
        # Logs never mix with the result on stdout
        assert "Matched" not in captured.out
        assert captured.out.startswith("0.8571\tcoalitioninc.com")

    def test_default_level_is_quiet(self, capsys):
        app.main(["match", "Coalition, Inc", "coalitioninc.com", "--offline"])
        assert "Matched" not in capsys.readouterr().err

    def test_log_dir_writes_file(self, monkeypatch, tmp_path):
        log_dir = tmp_path / "logs"
        monkeypatch.setenv("DOMAINMATCH_LOG_DIR", str(log_dir))
        app.main(["match", "Coalition, Inc", "coalitioninc.com", "--offline"])
        log_files = list(log_dir.glob("domainmatch_*.log"))
        assert len(log_files) == 1
        assert "Matched" in log_files[0].read_text(encoding="utf-8")

    def test_bad_log_level_exits(self, monkeypatch):
        monkeypatch.setenv("DOMAINMATCH_LOG_LEVEL", "LOUD")
        with pytest.raises(SystemExit, match="DOMAINMATCH_LOG_LEVEL"):
            app.main(["match", "Coalition", "coalition.com", "--offline"])


class TestOtherCommands:
    """Test `--version`, bare invocation and matcher assembly."""

    def test_version(self, capsys):
        app.main(["--version"])
        assert capsys.readouterr().out.strip() == __version__

    def test_no_command_prints_help(self, capsys):
        app.main([])
        assert "usage: domainmatch" in capsys.readouterr().out

    def test_removed_commands_are_rejected(self):
        with pytest.raises(SystemExit):
            app.main(["phrase", "Coalition"])

    def test_build_matcher_offline(self):
        args = app.argparse.Namespace(offline=True, timeout=2.0, weight=None)
        matcher = app.build_matcher(args)
        assert matcher.scores[MatchTest.WEB_PAGE_REF] == 0
        assert matcher.timeout == 2.0
