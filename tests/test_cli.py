"""
Tests for the command-line entry point in slotwatch/cli.py.

The scan service and notifier builders are patched; these tests cover
argument handling, exit codes and failure alerts.
"""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from slotwatch.cli import EXIT_CONFIG, EXIT_FATAL, EXIT_OK, main, parse_args
from slotwatch.config import CacheBackend, NotifierChannel
from slotwatch.errors import ConfigurationError, NotificationTransportError
from slotwatch.models.schemas import RunReport, ScanResult, Target


@pytest.fixture
def targets() -> list[Target]:
    return [Target(name="A", url="https://a.test/")]


@pytest.fixture
def notifier() -> MagicMock:
    """Create a notifier whose send is awaitable."""
    mock = MagicMock()
    mock.send = AsyncMock()
    return mock


def _service(report: RunReport | None = None, error: Exception | None = None) -> MagicMock:
    service = MagicMock()
    service.run = AsyncMock(return_value=report, side_effect=error)
    return service


class TestParseArgs:
    def test_defaults(self) -> None:
        """Test default flags."""
        args = parse_args([])
        assert args.dry_run is False
        assert args.headed is False

    def test_flags(self) -> None:
        """Test explicit flags."""
        args = parse_args(["--targets", "t.json", "--dry-run", "--headed", "--log-level", "debug"])
        assert args.targets == "t.json"
        assert args.dry_run is True
        assert args.headed is True
        assert args.log_level == "debug"


class TestMain:
    """Tests for exit codes returned by main()."""

    def test_successful_run_exits_zero(self, targets: list[Target], notifier: MagicMock) -> None:
        """Test that a completed run exits 0 even with per-target errors."""
        report = RunReport(
            started_at=datetime(2025, 1, 1),
            results=[ScanResult(name="A", url="u", error="NavigationTimeout: slow")],
        )
        with (
            patch("slotwatch.cli.load_targets", return_value=targets),
            patch("slotwatch.cli.build_notifier", return_value=notifier),
            patch("slotwatch.cli.build_scan_service", return_value=_service(report)),
        ):
            assert main([]) == EXIT_OK
        notifier.send.assert_not_called()

    def test_configuration_error_exits_two(self, notifier: MagicMock) -> None:
        """Test that a bad target file exits 2 and sends a configuration alert."""
        with (
            patch("slotwatch.cli.load_targets", side_effect=ConfigurationError("bad file")),
            patch("slotwatch.cli.build_notifier", return_value=notifier),
            patch("slotwatch.cli.build_scan_service") as mock_build,
        ):
            assert main(["--targets", "missing.json"]) == EXIT_CONFIG

        mock_build.assert_not_called()
        subject, body = notifier.send.call_args.args
        assert subject == "【設定エラー】slotwatch"
        assert body == "bad file"

    def test_fatal_error_exits_one(self, targets: list[Target], notifier: MagicMock) -> None:
        """Test that an unexpected run error exits 1 with a traceback alert."""
        with (
            patch("slotwatch.cli.load_targets", return_value=targets),
            patch("slotwatch.cli.build_notifier", return_value=notifier),
            patch(
                "slotwatch.cli.build_scan_service",
                return_value=_service(error=RuntimeError("chrome not found")),
            ),
        ):
            assert main([]) == EXIT_FATAL

        subject, body = notifier.send.call_args.args
        assert subject == "【監視エラー】slotwatch"
        assert "chrome not found" in body

    def test_alert_failure_does_not_change_exit_code(self, notifier: MagicMock) -> None:
        """Test that a failing alert transport is only logged."""
        notifier.send.side_effect = NotificationTransportError("smtp down")
        with (
            patch("slotwatch.cli.load_targets", side_effect=ConfigurationError("bad file")),
            patch("slotwatch.cli.build_notifier", return_value=notifier),
        ):
            assert main([]) == EXIT_CONFIG

    def test_dry_run_uses_log_notifier_and_memory_cache(self, targets: list[Target]) -> None:
        """Test that --dry-run never builds a real notifier or persistent cache."""
        report = RunReport(started_at=datetime(2025, 1, 1))
        with (
            patch("slotwatch.cli.load_targets", return_value=targets),
            patch("slotwatch.cli.build_notifier") as mock_notifier,
            patch("slotwatch.cli.build_scan_service", return_value=_service(report)) as mock_build,
        ):
            assert main(["--dry-run", "--headed"]) == EXIT_OK

        mock_notifier.assert_not_called()
        config = mock_build.call_args.args[0]
        assert config.notifier_channel == NotifierChannel.LOG
        assert config.cache_backend == CacheBackend.MEMORY
        assert config.headless is False
