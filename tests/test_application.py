"""Tests for the application entry point."""

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from volscan.main import VolScanApplication, main, parse_args
from volscan.orchestrator.cycle import CycleError
from tests.conftest import make_settings


@pytest.fixture
def app() -> VolScanApplication:
    app = VolScanApplication(make_settings())
    app.cycle = AsyncMock()
    app.notifier = AsyncMock()
    return app


class TestRunCycle:

    async def test_success(self, app):
        app.cycle.run.return_value = "report"
        assert await app.run_cycle() == "report"
        app.notifier.send.assert_not_awaited()

    async def test_cycle_error_reported(self, app):
        app.cycle.run.side_effect = CycleError("Symbol list is empty")

        assert await app.run_cycle() is None
        app.notifier.send.assert_awaited_once_with("⚠️ Bot error: Symbol list is empty")
        assert app.cycles_failed == 1

    async def test_unexpected_error_reported(self, app):
        app.cycle.run.side_effect = KeyError("x")
        assert await app.run_cycle() is None
        assert app.notifier.send.await_args.args[0].startswith("⚠️ Bot error:")

    async def test_not_initialized(self):
        with pytest.raises(RuntimeError):
            await VolScanApplication(make_settings()).run_cycle()


class TestSchedule:

    async def test_once_runs_single_cycle(self, app):
        await app.start(once=True)
        assert app.cycle.run.await_count == 1
        assert not app.running

    async def test_stop_ends_wait(self, app):
        async def stop_after_first(*args, **kwargs):
            await app.stop()

        app.cycle.run.side_effect = stop_after_first
        await app.start()
        assert app.cycle.run.await_count == 1


class TestMain:

    def test_parse_args(self):
        args = parse_args(["--config", "x.yaml", "--once"])
        assert args.config == Path("x.yaml")
        assert args.once

    async def test_missing_credentials_exit_code(self, tmp_path: Path, monkeypatch):
        for var in ("COINGECKO_API_KEY", "TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN", "TELEGRAM_CHAT_ID"):
            monkeypatch.delenv(var, raising=False)
        config = tmp_path / "volscan.yaml"
        config.write_text("log_to_file: false\n")

        assert await main(["--config", str(config), "--once"]) == 1

    async def test_bad_config_exit_code(self, tmp_path: Path):
        assert await main(["--config", str(tmp_path / "missing.yaml")]) == 1
