"""
Position Engine

Orchestrates the position lifecycle against the ledger store:
opening (margin lock), closing (exactly-once settlement), scanning
open positions for exits, and recovering stuck settlements.

Manual closes and automatic exits both go through `close`, whose
open -> closing compare-and-set guarantees a single winner.
"""

import asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Iterable, Callable, Tuple, Union

from app.domain.models.account import Account
from app.domain.models.position import Position, PositionStatus, PositionSide, ExitReason
from app.domain.models.ledger_entry import LedgerEntry
from app.domain.models.results import (
    CloseOutcome,
    CloseResult,
    ScanPositionResult,
    ScanReport,
    RecoveryReport,
)
from app.domain.services.exit_evaluator import evaluate
from app.domain.services.position_calculator import (
    MONEY_PLACES,
    compute_margin,
    compute_liquidation_price,
    compute_pnl,
    compute_settlement,
)
from app.infrastructure.db.ledger_store import LedgerStore
from app.infrastructure.market_data.price_oracle import PriceOracle
from app.shared.exceptions import (
    AccountNotFoundError,
    DatabaseError,
    InsufficientFundsError,
    InvalidParametersError,
    PositionNotFoundError,
    PriceUnavailableError,
    SettlementCommitFailedError,
    UnauthorizedError,
)
from app.shared.models import utc_now
from app.utils.logger import get_logger, position_context
from app.utils.validators import (
    validate_leverage,
    validate_positive_decimal,
    validate_symbol,
    validate_non_empty_string,
)

logger = get_logger(__name__)


class PositionEngine:
    """
    Position Engine

    Handles position business logic:
    - Opening positions (validation, margin lock, liquidation price)
    - Closing positions exactly once (manual and automatic)
    - Scanning positions against a price
    - Recovering settlements left in `closing`
    - Account / position queries for API callers

    Usage:
        engine = PositionEngine(store, oracle)

        position = await engine.open_position(
            account_id=account.id,
            symbol="BTC/USDT",
            side="long",
            size=Decimal("1000"),
            leverage=Decimal("10"),
        )

        result = await engine.manual_close(position.id, account.id)
    """

    def __init__(
        self,
        store: LedgerStore,
        oracle: PriceOracle,
        price_timeout_seconds: float = 5.0,
        commit_timeout_seconds: float = 10.0,
        money_places: int = MONEY_PLACES,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize position engine.

        Args:
            store: Ledger store (single source of truth for money)
            oracle: Price oracle for entry and manual-close prices
            price_timeout_seconds: Upper bound of one price fetch
            commit_timeout_seconds: Upper bound of one store transaction
            money_places: Decimal places money is rounded to
            clock: Source of current UTC time
        """
        self.store = store
        self.oracle = oracle
        self.price_timeout_seconds = price_timeout_seconds
        self.commit_timeout_seconds = commit_timeout_seconds
        self.money_places = money_places
        self._clock = clock

    # ==================== PRICES ====================

    async def fetch_price(self, symbol: str) -> Decimal:
        """
        Fetch a price with a timeout.

        Raises:
            PriceUnavailableError: On oracle failure or timeout
        """
        try:
            return await asyncio.wait_for(
                self.oracle.get_price(symbol),
                timeout=self.price_timeout_seconds
            )
        except asyncio.TimeoutError:
            raise PriceUnavailableError(f"Price fetch timed out for {symbol}", symbol=symbol)

    async def get_mark_prices(self, symbols: Iterable[str]) -> Dict[str, Optional[Decimal]]:
        """
        Fetch one price per distinct symbol; unavailable prices map to None.
        """
        distinct = sorted(set(symbols))
        results = await asyncio.gather(
            *(self.fetch_price(symbol) for symbol in distinct),
            return_exceptions=True
        )
        prices: Dict[str, Optional[Decimal]] = {}
        for symbol, result in zip(distinct, results):
            if isinstance(result, PriceUnavailableError):
                prices[symbol] = None
            elif isinstance(result, BaseException):
                raise result
            else:
                prices[symbol] = result
        return prices

    # ==================== OPEN ====================

    async def open_position(
        self,
        account_id: str,
        symbol: str,
        side: Union[PositionSide, str],
        size: Decimal,
        leverage: Decimal,
        take_profit: Optional[Decimal] = None,
        stop_loss: Optional[Decimal] = None
    ) -> Position:
        """
        Open a leveraged position.

        Validates inputs, fetches the entry price server-side, then
        atomically debits the margin and persists the position as open.

        Args:
            account_id: Owning account ID
            symbol: Trading pair (e.g., "BTC/USDT")
            side: "long" or "short"
            size: Notional size
            leverage: Leverage (>= 1)
            take_profit: Optional take-profit price
            stop_loss: Optional stop-loss price

        Returns:
            The open position with margin and liquidation price set

        Raises:
            InvalidParametersError: Bad size, leverage, symbol, side or exit levels,
                or a margin that rounds to zero or overflows Decimal128
            AccountNotFoundError: Account does not exist
            InsufficientFundsError: Balance below margin (nothing is debited)
            PriceUnavailableError: Entry price could not be fetched
        """
        try:
            account_id = validate_non_empty_string(account_id, "account_id")
            symbol = validate_symbol(symbol)
            position_side = PositionSide(side)
            size = validate_positive_decimal(size, "size")
            leverage = validate_leverage(leverage)
            if take_profit is not None:
                take_profit = validate_positive_decimal(take_profit, "take_profit")
            if stop_loss is not None:
                stop_loss = validate_positive_decimal(stop_loss, "stop_loss")
        except ValueError as e:
            raise InvalidParametersError(str(e))

        margin = compute_margin(size, leverage, self.money_places)

        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        if account.balance < margin:
            raise InsufficientFundsError(
                f"Balance {account.balance} is below required margin {margin}"
            )

        entry_price = await self.fetch_price(symbol)
        self._validate_exit_levels(position_side, entry_price, take_profit, stop_loss)

        position = Position(
            account_id=account_id,
            symbol=symbol,
            side=position_side,
            size=size,
            leverage=leverage,
            margin=margin,
            entry_price=entry_price,
            liquidation_price=compute_liquidation_price(
                entry_price, leverage, position_side, self.money_places
            ),
            take_profit=take_profit,
            stop_loss=stop_loss,
            status=PositionStatus.PENDING,
        )

        try:
            position = await asyncio.wait_for(
                self.store.open_position(position),
                timeout=self.commit_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(f"Opening position for account {account_id} timed out")
            raise DatabaseError("Opening position timed out")

        logger.info(
            f"Position {position.id} opened: account={account_id}, {position.side} {symbol}, "
            f"size={size}, leverage={leverage}, margin={margin}, "
            f"entry={entry_price}, liquidation={position.liquidation_price}",
            extra=position_context(position)
        )

        return position

    @staticmethod
    def _validate_exit_levels(
        side: PositionSide,
        entry_price: Decimal,
        take_profit: Optional[Decimal],
        stop_loss: Optional[Decimal]
    ) -> None:
        """Take-profit must sit on the profitable side of entry, stop-loss on the losing side."""
        if side == PositionSide.LONG:
            if take_profit is not None and take_profit <= entry_price:
                raise InvalidParametersError(
                    f"take_profit {take_profit} must be above entry price {entry_price} for a long"
                )
            if stop_loss is not None and stop_loss >= entry_price:
                raise InvalidParametersError(
                    f"stop_loss {stop_loss} must be below entry price {entry_price} for a long"
                )
        else:
            if take_profit is not None and take_profit >= entry_price:
                raise InvalidParametersError(
                    f"take_profit {take_profit} must be below entry price {entry_price} for a short"
                )
            if stop_loss is not None and stop_loss <= entry_price:
                raise InvalidParametersError(
                    f"stop_loss {stop_loss} must be above entry price {entry_price} for a short"
                )

    # ==================== CLOSE ====================

    async def close(
        self,
        position_id: str,
        exit_price: Decimal,
        reason: Union[ExitReason, str]
    ) -> CloseResult:
        """
        Close a position exactly once.

        Claims the position with an open -> closing compare-and-set, then
        commits settlement (credit, closed status, ledger entry) as one unit.

        Args:
            position_id: Position ID
            exit_price: Price the position exits at
            reason: Exit reason

        Returns:
            CloseResult with outcome `settled`, or `already_closed` when
            another caller claimed the position first

        Raises:
            InvalidParametersError: Bad exit price or reason
            PositionNotFoundError: Position does not exist
            SettlementCommitFailedError: Commit failed after the claim;
                the position stays `closing` for the recovery sweep
        """
        try:
            exit_price = validate_positive_decimal(exit_price, "exit_price")
            reason = ExitReason(reason)
        except ValueError as e:
            raise InvalidParametersError(str(e))

        claimed_at = self._clock()
        try:
            claimed = await asyncio.wait_for(
                self.store.claim_for_close(position_id, exit_price, reason, claimed_at),
                timeout=self.commit_timeout_seconds
            )
        except asyncio.TimeoutError:
            # The claim may or may not have landed; recovery settles it if it did
            logger.error(f"Claim of position {position_id} timed out")
            raise SettlementCommitFailedError(
                f"Claim of position {position_id} timed out",
                position_id=position_id
            )

        if claimed is None:
            existing = await self.store.get_position(position_id)
            if existing is None:
                raise PositionNotFoundError(f"Position {position_id} not found")
            logger.debug(f"Position {position_id} already {existing.status}, close skipped")
            return CloseResult(
                outcome=CloseOutcome.ALREADY_CLOSED,
                position_id=position_id,
                position=existing
            )

        credited, entry = await self._commit_settlement(claimed, exit_price, reason)
        position = await self.store.get_position(position_id)

        if not credited:
            return CloseResult(
                outcome=CloseOutcome.ALREADY_CLOSED,
                position_id=position_id,
                position=position,
                ledger_entry=entry
            )

        logger.info(
            f"Position {position_id} closed: reason={reason.value}, exit={exit_price}, "
            f"pnl={entry.pnl}, settlement={entry.amount}",
            extra=position_context(claimed)
        )

        return CloseResult(
            outcome=CloseOutcome.SETTLED,
            position_id=position_id,
            position=position,
            ledger_entry=entry
        )

    async def _commit_settlement(
        self,
        position: Position,
        exit_price: Decimal,
        reason: ExitReason
    ) -> Tuple[bool, Optional[LedgerEntry]]:
        """
        Compute PnL and settlement for a claimed position and commit it.

        Returns:
            (credited, ledger entry). When the settlement had already been
            committed, the existing ledger entry is returned.

        Raises:
            SettlementCommitFailedError: On any store failure or timeout
        """
        pnl = compute_pnl(position.entry_price, exit_price, position.size, position.side, self.money_places)
        settlement = compute_settlement(position.margin, pnl, self.money_places)
        closed_at = self._clock()

        entry = LedgerEntry(
            position_id=position.id,
            account_id=position.account_id,
            amount=settlement.amount,
            pnl=pnl,
            shortfall=settlement.shortfall,
            reason=reason,
            timestamp=closed_at,
        )

        try:
            credited = await asyncio.wait_for(
                self.store.commit_settlement(position, entry, exit_price, pnl, closed_at),
                timeout=self.commit_timeout_seconds
            )
        except Exception as e:
            logger.error(
                f"Settlement commit failed for position {position.id} "
                f"(left in closing for recovery): {type(e).__name__}: {str(e)}",
                extra=position_context(position)
            )
            raise SettlementCommitFailedError(
                f"Settlement commit failed for position {position.id}",
                position_id=position.id
            ) from e

        if not credited:
            logger.info(f"Settlement for position {position.id} was already committed")
            return False, await self.store.get_ledger_entry(position.id)

        if settlement.has_shortfall:
            logger.warning(
                f"Position {position.id} settled with unrecovered shortfall {settlement.shortfall} "
                f"(account={position.account_id}, exit={exit_price}, "
                f"liquidation={position.liquidation_price})",
                extra=position_context(position)
            )

        return True, entry

    async def manual_close(self, position_id: str, requesting_account_id: str) -> CloseResult:
        """
        Close a position on its owner's request at the current oracle price.

        Args:
            position_id: Position ID
            requesting_account_id: Account asking for the close

        Returns:
            CloseResult (`already_closed` if it is no longer open)

        Raises:
            PositionNotFoundError: Position does not exist
            UnauthorizedError: Position belongs to another account
            PriceUnavailableError: Price could not be fetched
            SettlementCommitFailedError: Commit failed after the claim
        """
        position = await self.store.get_position(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")

        if position.account_id != requesting_account_id:
            logger.warning(
                f"Account {requesting_account_id} tried to close position {position_id} "
                f"owned by {position.account_id}"
            )
            raise UnauthorizedError("Position belongs to another account")

        if not position.is_open():
            return CloseResult(
                outcome=CloseOutcome.ALREADY_CLOSED,
                position_id=position_id,
                position=position
            )

        price = await self.fetch_price(position.symbol)
        return await self.close(position_id, price, ExitReason.MANUAL_CLOSE)

    # ==================== SCAN ====================

    async def scan_and_close(self, positions: List[Position], price: Decimal) -> ScanReport:
        """
        Evaluate positions against one price and close those that must exit.

        A failure on one position never stops evaluation of the others;
        it is recorded in the report instead.

        Args:
            positions: Positions sharing the symbol `price` belongs to
            price: Current price

        Returns:
            ScanReport with per-position results
        """
        report = ScanReport(price=price)

        for position in positions:
            if not position.is_open():
                continue

            report.evaluated += 1
            reason = evaluate(position, price)
            if reason is None:
                continue

            report.triggered += 1
            try:
                result = await self.close(position.id, price, reason)
            except Exception as e:
                logger.error(
                    f"Error closing position {position.id} ({reason.value}): {str(e)}",
                    extra=position_context(position)
                )
                report.errors += 1
                report.results.append(ScanPositionResult(
                    position_id=position.id,
                    reason=reason,
                    error=str(e)
                ))
                continue

            if result.settled:
                report.closed += 1
            else:
                report.already_closed += 1
            report.results.append(ScanPositionResult(
                position_id=position.id,
                reason=reason,
                outcome=result.outcome
            ))

        return report

    # ==================== RECOVERY ====================

    async def recover_stuck_closes(self, min_age_seconds: float = 30.0) -> RecoveryReport:
        """
        Finish settlement of positions left in `closing`.

        Uses the exit price and reason recorded by the claim. Safe to run
        repeatedly and concurrently with closes: a position whose ledger
        entry exists is never credited twice.

        Args:
            min_age_seconds: Only positions claimed at least this long ago

        Returns:
            RecoveryReport
        """
        older_than = self._clock() - timedelta(seconds=min_age_seconds)
        stuck = await self.store.find_stuck_closing(older_than)
        report = RecoveryReport()

        for position in stuck:
            report.examined += 1

            if position.pending_exit_price is None or position.pending_exit_reason is None:
                logger.error(f"Position {position.id} is closing without a recorded exit; needs operator review")
                report.failed += 1
                report.failed_position_ids.append(position.id)
                continue

            try:
                credited, _ = await self._commit_settlement(
                    position,
                    position.pending_exit_price,
                    ExitReason(position.pending_exit_reason)
                )
            except SettlementCommitFailedError:
                report.failed += 1
                report.failed_position_ids.append(position.id)
                continue

            if credited:
                report.settled += 1
                logger.info(f"Recovered settlement of position {position.id}", extra=position_context(position))
            else:
                report.finalized += 1

        if report.examined:
            logger.info(
                f"Recovery sweep: examined={report.examined}, settled={report.settled}, "
                f"finalized={report.finalized}, failed={report.failed}"
            )

        return report

    # ==================== QUERIES ====================

    async def get_account(self, account_id: str) -> Account:
        """
        Get account by ID.

        Raises:
            AccountNotFoundError: If account does not exist
        """
        account = await self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    async def get_position(self, position_id: str, account_id: str) -> Position:
        """
        Get a position owned by `account_id`.

        Raises:
            PositionNotFoundError: If position does not exist
            UnauthorizedError: If it belongs to another account
        """
        position = await self.store.get_position(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        if position.account_id != account_id:
            raise UnauthorizedError("Position belongs to another account")
        return position

    async def list_open_positions(self, account_id: Optional[str] = None) -> List[Position]:
        """
        Positions whose margin is still locked (`open` and `closing`),
        oldest first. Without an account ID, every `open` position
        across all accounts (what the scanner evaluates).
        """
        open_positions = await self.store.find_positions(status=PositionStatus.OPEN, account_id=account_id)
        if account_id is None:
            return open_positions
        closing = await self.store.find_positions(status=PositionStatus.CLOSING, account_id=account_id)
        return sorted(open_positions + closing, key=lambda p: p.created_at)

    async def list_history(self, account_id: str) -> List[Position]:
        """Closed positions of an account, newest first."""
        return await self.store.find_positions(status=PositionStatus.CLOSED, account_id=account_id)

    async def list_ledger_entries(self, account_id: str) -> List[LedgerEntry]:
        """Settlement records of an account, newest first."""
        return await self.store.find_ledger_entries(account_id)
