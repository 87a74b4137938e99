"""
Position Scanner

Periodically evaluates every open position against the current price
of its symbol and closes those that hit liquidation, take-profit or
stop-loss. Runs the recovery sweep for stuck settlements on a slower
cadence.

Author: Margin Engine Team
"""

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from app.domain.models.position import Position, PositionStatus
from app.domain.models.results import TickReport
from app.domain.services.position_engine import PositionEngine
from app.infrastructure.db.ledger_store import LedgerStore
from app.shared.models import utc_now
from app.utils.logger import get_logger

logger = get_logger(__name__)


class ScannerScheduler:
    """
    Position Scanner

    One tick:
    1. Load all open positions and group them by symbol
    2. Fetch one price per symbol concurrently, each with a timeout
    3. Skip symbols whose price is unavailable (retried next tick)
    4. Hand each group to the engine's scan_and_close
    5. Every `recovery_interval_seconds`, run the recovery sweep

    Usage:
        scanner = ScannerScheduler(engine, store, interval_seconds=10)

        # One-shot (Celery task, tests)
        report = await scanner.run_once()

        # Background loop (API lifespan)
        await scanner.start()
        ...
        await scanner.stop()
    """

    def __init__(
        self,
        engine: PositionEngine,
        store: LedgerStore,
        interval_seconds: float = 10.0,
        recovery_interval_seconds: Optional[float] = 60.0,
        recovery_min_age_seconds: float = 30.0
    ):
        """
        Initialize scanner.

        Args:
            engine: Position engine that fetches prices (with its timeout)
                and performs closes
            store: Ledger store to load open positions from
            interval_seconds: Time between ticks
            recovery_interval_seconds: Time between recovery sweeps (None disables them)
            recovery_min_age_seconds: Minimum age of a stuck `closing` position
        """
        self.engine = engine
        self.store = store
        self.interval_seconds = interval_seconds
        self.recovery_interval_seconds = recovery_interval_seconds
        self.recovery_min_age_seconds = recovery_min_age_seconds

        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._last_recovery_at: Optional[datetime] = None
        self.last_report: Optional[TickReport] = None

    def is_running(self) -> bool:
        """Check if the background loop is running."""
        return self._task is not None and not self._task.done()

    def _recovery_due(self, now: datetime) -> bool:
        if self.recovery_interval_seconds is None:
            return False
        if self._last_recovery_at is None:
            return True
        return (now - self._last_recovery_at).total_seconds() >= self.recovery_interval_seconds

    async def run_once(self, run_recovery: Optional[bool] = None) -> TickReport:
        """
        Run a single scanner tick.

        Args:
            run_recovery: Force (True) or suppress (False) the recovery
                sweep; by default it runs when due

        Returns:
            TickReport
        """
        report = TickReport(started_at=utc_now())

        positions = await self.store.find_positions(status=PositionStatus.OPEN)
        report.open_positions = len(positions)

        by_symbol: Dict[str, List[Position]] = defaultdict(list)
        for position in positions:
            by_symbol[position.symbol].append(position)
        report.symbols = len(by_symbol)

        if by_symbol:
            symbols = list(by_symbol.keys())
            prices = await asyncio.gather(
                *(self.engine.fetch_price(symbol) for symbol in symbols),
                return_exceptions=True
            )

            for symbol, price in zip(symbols, prices):
                if isinstance(price, Exception):
                    logger.warning(f"Skipping {symbol} this tick, price unavailable: {str(price)}")
                    report.skipped_symbols.append(symbol)
                    continue

                scan = await self.engine.scan_and_close(by_symbol[symbol], price)
                report.scans[symbol] = scan

                if scan.triggered:
                    logger.info(
                        f"{symbol} @ {price}: evaluated={scan.evaluated}, triggered={scan.triggered}, "
                        f"closed={scan.closed}, already_closed={scan.already_closed}, errors={scan.errors}"
                    )

        if run_recovery is None:
            run_recovery = self._recovery_due(report.started_at)
        if run_recovery:
            report.recovery = await self.engine.recover_stuck_closes(self.recovery_min_age_seconds)
            self._last_recovery_at = report.started_at

        self.last_report = report
        return report

    async def _loop(self) -> None:
        logger.info(f"Position scanner started (interval={self.interval_seconds}s)")
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception as e:
                # A failed tick (e.g. store unreachable) must not kill the loop
                logger.error(f"Scanner tick failed: {type(e).__name__}: {str(e)}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
        logger.info("Position scanner stopped")

    async def start(self) -> None:
        """Start the background loop."""
        if self.is_running():
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Stop the background loop, letting an in-flight tick finish."""
        if not self.is_running():
            return
        self._stopping.set()
        await self._task
        self._task = None
