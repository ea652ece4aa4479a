"""
Tests for main.py - Main Entry Point

Tests for the main entry point including:
- Logging configuration
- Argument parsing
- One-shot commands against a real SQLite log
- Error handling
"""

import json
import logging
from unittest.mock import AsyncMock, MagicMock, mock_open, patch

import pytest

from room_queue.config.container import Container
from room_queue.config.settings import Settings, StoreSettings
from room_queue.domain.shared.exceptions import ConfigurationError
from room_queue.main import build_parser, main, run_command, run_service, setup_logging


def file_settings(tmp_path):
    return Settings(store=StoreSettings(url=f"sqlite:///{tmp_path}/queue.db"))


class TestLoggingSetup:
    """Tests for logging configuration."""

    def _make_valid_config(self) -> dict:
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "handlers": {},
            "loggers": {
                "aiosqlite": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
            "root": {"level": "INFO", "handlers": []},
        }

    def test_dictconfig_called_when_json_exists(self):
        """Should call dictConfig when logging_config.json exists."""
        config = self._make_valid_config()
        m = mock_open(read_data=json.dumps(config))
        with (
            patch("builtins.open", m),
            patch("logging.config.dictConfig") as mock_dc,
        ):
            setup_logging()

            mock_dc.assert_called_once_with(config)

    def test_fallback_to_basicconfig_when_json_missing(self):
        """Should fallback to basicConfig when logging_config.json is missing."""
        with (
            patch("builtins.open", side_effect=FileNotFoundError),
            patch("logging.basicConfig") as mock_bc,
        ):
            setup_logging()

            mock_bc.assert_called_once()
            assert mock_bc.call_args[1]["level"] == logging.INFO

    def test_fallback_to_basicconfig_when_json_malformed(self):
        """Should fallback to basicConfig when JSON is malformed."""
        m = mock_open(read_data="{invalid json")
        with (
            patch("builtins.open", m),
            patch("logging.basicConfig") as mock_bc,
        ):
            setup_logging()

            mock_bc.assert_called_once()

    def test_root_logger_level_overridden_by_settings(self):
        """Should override root logger level with the provided log_level."""
        m = mock_open(read_data=json.dumps(self._make_valid_config()))
        with (
            patch("builtins.open", m),
            patch("logging.config.dictConfig"),
            patch("logging.getLogger") as mock_get_logger,
        ):
            mock_root = MagicMock()
            mock_get_logger.return_value = mock_root

            setup_logging("DEBUG")

            mock_root.setLevel.assert_called_once_with(logging.DEBUG)

    def test_shipped_config_uses_colored_formatter(self):
        """Should point the console handler at ColoredFormatter."""
        from room_queue.main import _LOGGING_CONFIG_PATH

        config = json.loads(_LOGGING_CONFIG_PATH.read_text())

        formatters = config["formatters"].values()
        assert any(
            f.get("()") == "room_queue.utils.logging.ColoredFormatter" for f in formatters
        )
        assert config["loggers"]["aiosqlite"]["level"] == "WARNING"


class TestParser:
    """Tests for command-line parsing."""

    def test_no_command_means_run(self):
        assert build_parser().parse_args([]).command is None

    def test_run_with_arbiter(self):
        args = build_parser().parse_args(["run", "--arbiter"])

        assert args.command == "run"
        assert args.arbiter

    def test_enqueue_with_requester(self):
        args = build_parser().parse_args(["enqueue", "https://example.com/a", "--by", "Alex"])

        assert (args.url, args.by) == ("https://example.com/a", "Alex")

    def test_reorder_parses_ids(self):
        assert build_parser().parse_args(["reorder", "3", "1"]).ids == [3, 1]

    def test_reorder_rejects_non_integers(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["reorder", "first"])


class TestRunCommand:
    """Tests for one-shot commands against a file-backed log."""

    async def _run(self, tmp_path, *argv):
        container = Container(file_settings(tmp_path))
        return await run_command(container, build_parser().parse_args(list(argv)))

    @pytest.mark.asyncio
    async def test_enqueue_then_state(self, tmp_path, capsys):
        assert await self._run(tmp_path, "enqueue", "https://example.com/a", "--by", "Alex") == 0
        enqueued = json.loads(capsys.readouterr().out)

        assert await self._run(tmp_path, "state") == 0
        state = json.loads(capsys.readouterr().out)

        assert enqueued == {"id": 1, "url": "https://example.com/a", "pending": False}
        assert state["queue"] == [{"id": 1, "url": "https://example.com/a", "title": None}]
        assert state["connected"] is True

    @pytest.mark.asyncio
    async def test_reorder_prints_new_order(self, tmp_path, capsys):
        for name in ("a", "b", "c"):
            await self._run(tmp_path, "enqueue", f"https://example.com/{name}")
        capsys.readouterr()

        assert await self._run(tmp_path, "reorder", "3") == 0

        state = json.loads(capsys.readouterr().out)
        assert [item["id"] for item in state["queue"]] == [3, 1, 2]

    @pytest.mark.asyncio
    async def test_skip_while_idle_reports_not_requested(self, tmp_path, capsys):
        assert await self._run(tmp_path, "skip") == 0

        assert json.loads(capsys.readouterr().out) == {"requested": False}

    @pytest.mark.asyncio
    async def test_clear(self, tmp_path, capsys):
        await self._run(tmp_path, "enqueue", "https://example.com/a")
        capsys.readouterr()

        assert await self._run(tmp_path, "clear") == 0

        assert json.loads(capsys.readouterr().out) == {"cleared": True}

    @pytest.mark.asyncio
    async def test_validation_error_returns_one(self, tmp_path):
        assert await self._run(tmp_path, "reorder", "42") == 1


class TestRunService:
    """Tests for the long-running service."""

    def _container(self, relay_configured):
        container = MagicMock()
        container.settings.relay_configured = relay_configured
        container.settings.arbiter.enabled = False
        container.queue_client.refresh = AsyncMock()
        container.shutdown = AsyncMock()
        return container

    async def _run(self, container):
        stop = MagicMock()
        stop.wait = AsyncMock()
        with patch("room_queue.main.asyncio.Event", return_value=stop):
            return await run_service(container)

    @pytest.mark.asyncio
    async def test_relay_started_when_configured(self):
        container = self._container(relay_configured=True)

        assert await self._run(container) == 0

        container.webhook_relay.start.assert_called_once()
        container.queue_client.start.assert_called_once()
        container.playback_arbiter.start.assert_not_called()
        container.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_relay_not_started_without_hook_access(self):
        container = self._container(relay_configured=False)

        await self._run(container)

        container.webhook_relay.start.assert_not_called()


class TestMainFunction:
    """Tests for main entry point function."""

    def _settings(self):
        mock_settings = MagicMock()
        mock_settings.log_level = "INFO"
        mock_settings.room = "default"
        mock_settings.environment = "test"
        return mock_settings

    def test_main_runs_service_by_default(self):
        """Should run the service when no command is given."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container") as mock_create,
            patch("room_queue.main.run_service", new=AsyncMock(return_value=0)) as mock_run,
        ):
            exit_code = main([])

        assert exit_code == 0
        mock_run.assert_awaited_once_with(mock_create.return_value, arbiter=False)

    def test_main_passes_arbiter_flag(self):
        """Should ask for the arbiter when --arbiter is given."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container"),
            patch("room_queue.main.run_service", new=AsyncMock(return_value=0)) as mock_run,
        ):
            main(["run", "--arbiter"])

        assert mock_run.await_args.kwargs["arbiter"] is True

    def test_main_dispatches_commands(self):
        """Should run one-shot commands through run_command."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container"),
            patch("room_queue.main.run_command", new=AsyncMock(return_value=0)) as mock_cmd,
        ):
            exit_code = main(["state"])

        assert exit_code == 0
        assert mock_cmd.await_args.args[1].command == "state"

    def test_main_handles_configuration_error(self):
        """Should return 1 when the store cannot be configured."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container"),
            patch(
                "room_queue.main.run_service",
                new=AsyncMock(side_effect=ConfigurationError("no repo")),
            ),
        ):
            assert main([]) == 1

    def test_main_handles_keyboard_interrupt(self):
        """Should return 0 on KeyboardInterrupt (graceful shutdown)."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container"),
            patch("room_queue.main.run_service", new=AsyncMock(side_effect=KeyboardInterrupt)),
        ):
            assert main([]) == 0

    def test_main_handles_exception(self):
        """Should return error code on unhandled exception."""
        with (
            patch("room_queue.config.settings.get_settings", return_value=self._settings()),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container"),
            patch(
                "room_queue.main.run_service",
                new=AsyncMock(side_effect=RuntimeError("crashed")),
            ),
        ):
            assert main([]) == 1

    def test_main_creates_container_with_settings(self):
        """Should create DI container with loaded settings."""
        settings = self._settings()
        with (
            patch("room_queue.config.settings.get_settings", return_value=settings),
            patch("room_queue.main.setup_logging"),
            patch("room_queue.config.container.create_container") as mock_create,
            patch("room_queue.main.run_command", new=AsyncMock(return_value=0)),
        ):
            main(["state"])

        mock_create.assert_called_once_with(settings)
