"""
Main entry point for the volatility scanner.
Runs one evaluation cycle immediately, then one every check interval.
"""

import argparse
import asyncio
import contextlib
import signal
import sys
from pathlib import Path

from volscan.api.coingecko_client import CoinGeckoClient
from volscan.config.manager import ConfigError, load_settings
from volscan.config.schemas import Settings
from volscan.orchestrator.cycle import CycleError, CycleReport, EvaluationCycle
from volscan.storage.snapshot_store import create_snapshot_store
from volscan.telegram.formatter import ReportFormatter
from volscan.telegram.notifier import TelegramNotifier
from volscan.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


class VolScanApplication:
    """Wires the collaborators together and drives the cycle schedule."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.client: CoinGeckoClient | None = None
        self.store = None
        self.notifier: TelegramNotifier | None = None
        self.cycle: EvaluationCycle | None = None
        self._shutdown_event = asyncio.Event()
        self.running = False
        self.cycles_run = 0
        self.cycles_failed = 0

    async def initialize(self) -> None:
        """Create the client, store, notifier and cycle."""
        logger.info("initializing_application", storage=self.settings.storage.backend.value)

        self.client = CoinGeckoClient(self.settings.market_data)
        await self.client.initialize()
        self.store = create_snapshot_store(self.settings.storage)
        self.notifier = TelegramNotifier(self.settings.telegram)
        self.cycle = EvaluationCycle(
            settings=self.settings,
            client=self.client,
            store=self.store,
            notifier=self.notifier,
        )

    async def run_cycle(self) -> CycleReport | None:
        """Run one cycle; a failure is reported to Telegram and swallowed."""
        if self.cycle is None:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        self.cycles_run += 1
        try:
            return await self.cycle.run()
        except CycleError as e:
            self.cycles_failed += 1
            logger.error("cycle_failed", error=str(e))
            await self._report_failure(e)
        except Exception as e:
            self.cycles_failed += 1
            logger.error("cycle_crashed", error=str(e), exc_info=True)
            await self._report_failure(e)
        return None

    async def _report_failure(self, error: BaseException) -> None:
        if self.notifier is not None:
            await self.notifier.send(ReportFormatter.failure(error))

    async def start(self, once: bool = False) -> None:
        """Run cycles until stopped (or a single cycle with ``once``)."""
        self.running = True
        self._shutdown_event.clear()
        interval = self.settings.check_interval_seconds
        logger.info("scheduler_started", interval_hours=self.settings.check_interval_hours, once=once)

        while self.running:
            await self.run_cycle()
            if once:
                break
            # only one cycle is ever in flight: the next starts after this wait
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)

        self.running = False
        logger.info("scheduler_stopped", cycles=self.cycles_run, failed=self.cycles_failed)

    async def stop(self) -> None:
        logger.info("stopping_application")
        self.running = False
        self._shutdown_event.set()

    async def cleanup(self) -> None:
        """Close network resources."""
        if self.client is not None:
            await self.client.close()
        if self.notifier is not None:
            await self.notifier.close()
        close_store = getattr(self.store, "close", None)
        if close_store is not None:
            await close_store()
        logger.info("application_cleaned_up")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="volscan",
        description="Rank instruments by realized volatility and backtest grid trading on the top ones.",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML settings file")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Entry point; returns the process exit code."""
    args = parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    setup_logging(
        log_level=args.log_level or settings.log_level,
        log_dir=Path(settings.log_dir),
        log_to_console=settings.log_to_console,
        log_to_file=settings.log_to_file,
        json_logs=settings.json_logs,
    )

    missing = settings.missing_credentials()
    if missing:
        logger.error("missing_credentials", missing=missing)
        return 1

    app = VolScanApplication(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, lambda s=sig: asyncio.ensure_future(_on_signal(app, s)))

    try:
        await app.initialize()
        await app.start(once=args.once)
    except Exception as e:
        logger.error("application_error", error=str(e), exc_info=True)
        return 1
    finally:
        await app.cleanup()
    return 0


async def _on_signal(app: VolScanApplication, sig: signal.Signals) -> None:
    logger.info("signal_received", signal=sig.name)
    await app.stop()


def run() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
