"""
Tests for FFplayEngine - Local Playback Engine

Tests for the ffplay-based engine including:
- Command-line construction
- Completion and error callbacks
- Stopping and replacing a running player
- Missing player executable

The subprocess is replaced with an in-memory fake.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from room_queue.domain.shared.exceptions import PlaybackError
from room_queue.infrastructure.audio.ffplay_engine import FFplayConfig, FFplayEngine


class FakeProcess:
    """Stands in for asyncio.subprocess.Process."""

    def __init__(self, pid=4242):
        self.pid = pid
        self.returncode = None
        self.stderr_output = b""
        self._exited = asyncio.Event()
        self.terminated = False

    def exit(self, code, stderr=b""):
        self.stderr_output = stderr
        self.returncode = code
        self._exited.set()

    def terminate(self):
        self.terminated = True
        self.exit(-15)

    def kill(self):
        self.exit(-9)

    async def wait(self):
        await self._exited.wait()
        return self.returncode

    async def communicate(self):
        await self._exited.wait()
        return b"", self.stderr_output


@pytest.fixture
def process():
    return FakeProcess()


@pytest.fixture
def spawn(process):
    with patch(
        "room_queue.infrastructure.audio.ffplay_engine.asyncio.create_subprocess_exec",
        new=AsyncMock(return_value=process),
    ) as mock_exec:
        yield mock_exec


@pytest.fixture
def engine():
    instance = FFplayEngine("ffplay")
    instance.completed = []
    instance.errors = []
    instance.set_on_complete_callback(lambda: instance.completed.append(True))
    instance.set_on_error_callback(instance.errors.append)
    return instance


class TestFFplayConfig:
    """Tests for ffplay argument construction."""

    def test_default_args(self):
        args = FFplayConfig().get_args(80)

        assert args[:6] == ["-nodisp", "-autoexit", "-loglevel", "error", "-volume", "80"]
        assert "-reconnect" in args

    def test_reconnect_can_be_disabled(self):
        assert "-reconnect" not in FFplayConfig(reconnect=False).get_args(100)


class TestPlayback:
    """Tests for starting, finishing and failing."""

    @pytest.mark.asyncio
    async def test_start_spawns_player_with_volume(self, engine, spawn):
        engine.set_volume(35)

        await engine.start("https://cdn/stream")

        args = spawn.call_args.args
        assert args[0] == "ffplay"
        assert args[-1] == "https://cdn/stream"
        assert args[args.index("-volume") + 1] == "35"
        assert engine.is_playing()
        await engine.stop()

    @pytest.mark.asyncio
    async def test_clean_exit_fires_complete(self, engine, spawn, process):
        await engine.start("https://cdn/stream")

        process.exit(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert engine.completed == [True]
        assert engine.errors == []
        assert not engine.is_playing()

    @pytest.mark.asyncio
    async def test_error_exit_fires_error_with_last_stderr_line(self, engine, spawn, process):
        await engine.start("https://cdn/stream")

        process.exit(1, b"Opening stream\nServer returned 403 Forbidden\n")
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert len(engine.errors) == 1
        error = engine.errors[0]
        assert isinstance(error, PlaybackError)
        assert "403 Forbidden" in error.message
        assert error.url == "https://cdn/stream"

    @pytest.mark.asyncio
    async def test_stop_terminates_without_callbacks(self, engine, spawn, process):
        await engine.start("https://cdn/stream")

        await engine.stop()
        await asyncio.sleep(0)

        assert process.terminated
        assert engine.completed == []
        assert engine.errors == []

    @pytest.mark.asyncio
    async def test_callback_exception_is_logged(self, spawn, process, caplog):
        engine = FFplayEngine()

        def explode():
            raise RuntimeError("listener broke")

        engine.set_on_complete_callback(explode)
        await engine.start("https://cdn/stream")
        process.exit(0)
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert "Error in player callback" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_executable_raises_playback_error(self, engine):
        with patch(
            "room_queue.infrastructure.audio.ffplay_engine.asyncio.create_subprocess_exec",
            new=AsyncMock(side_effect=FileNotFoundError),
        ):
            with pytest.raises(PlaybackError, match="not found"):
                await engine.start("https://cdn/stream")

    def test_volume_is_clamped(self, engine):
        engine.set_volume(250)

        assert engine._volume == 100
