"""
Unit tests for process setup and the resolve command.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from social.graze.atsession.app.cli import configure_logging, configure_sentry
from social.graze.atsession.app.config import Settings
from social.graze.atsession.atproto.errors import ErrorCode
from social.graze.atsession.atproto.result import failure, success
from social.graze.atsession.model.identity import ResolvedSubject
from social.graze.atsession.resolve.__main__ import realMain


class TestConfigure:
    """Test suite for logging and error reporting setup."""

    def test_debug_level(self, monkeypatch):
        monkeypatch.delenv("LOGGING_CONFIG_FILE", raising=False)
        configure_logging(Settings(debug=True))
        assert logging.getLogger().level == logging.DEBUG

        configure_logging(Settings(debug=False))
        assert logging.getLogger().level == logging.INFO

    def test_config_file(self, monkeypatch, tmp_path):
        config_file = tmp_path / "logging.json"
        config_file.write_text(
            '{"version": 1, "disable_existing_loggers": false,'
            ' "loggers": {"atsession.test": {"level": "WARNING"}}}'
        )
        monkeypatch.setenv("LOGGING_CONFIG_FILE", str(config_file))
        configure_logging()
        assert logging.getLogger("atsession.test").level == logging.WARNING

    def test_sentry_disabled_without_dsn(self):
        with patch("social.graze.atsession.app.cli.sentry_sdk") as mock_sentry:
            configure_sentry(Settings(sentry_dsn=None))
        mock_sentry.init.assert_not_called()

    def test_sentry_enabled(self):
        with patch("social.graze.atsession.app.cli.sentry_sdk") as mock_sentry:
            configure_sentry(Settings(sentry_dsn="https://key@sentry.example/1"))
        mock_sentry.init.assert_called_once_with(
            dsn="https://key@sentry.example/1", send_default_pii=False
        )


class TestResolveCommand:
    """Test suite for the resolve command line entry point."""

    @pytest.mark.asyncio
    async def test_prints_resolved_subjects(self, monkeypatch, capsys):
        monkeypatch.delenv("LOGGING_CONFIG_FILE", raising=False)
        monkeypatch.setattr(
            "sys.argv",
            ["resolve", "alice.example.com", "nobody.example.com", "--plc-hostname", "plc.example"],
        )

        async def resolve_subject(subject):
            if subject == "alice.example.com":
                return success(
                    ResolvedSubject(
                        did="did:plc:abc123",
                        handle="alice.example.com",
                        pds="https://pds.example.org",
                    )
                )
            return failure(None, ErrorCode.HANDLE_RESOLUTION_FAILED)

        client = MagicMock()
        client.__aenter__.return_value = client
        client.__aexit__.return_value = None

        with (
            patch(
                "social.graze.atsession.resolve.__main__.aiohttp.ClientSession",
                return_value=client,
            ),
            patch(
                "social.graze.atsession.resolve.__main__.IdentityResolver"
            ) as resolver_class,
        ):
            resolver_class.return_value.resolve_subject = AsyncMock(
                side_effect=resolve_subject
            )
            await realMain()

        assert resolver_class.call_args.args[1] == "plc.example"
        output = capsys.readouterr().out
        assert "resolved_handle" in output
        assert "did:plc:abc123" in output
        assert "nobody.example.com" not in output
