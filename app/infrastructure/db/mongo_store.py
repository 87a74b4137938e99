"""
MongoDB Ledger Store

Ledger store backed by MongoDB via Motor.

- Money is stored as Decimal128 through a BSON type codec, never as float.
- Opening and settlement run inside multi-document transactions
  (requires a replica set).
- The open -> closing claim is a single-document find_one_and_update.
- A unique index on ledger_entries.position_id backs settlement idempotence.

Author: Margin Engine Team
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any

from bson.codec_options import CodecOptions, TypeCodec, TypeRegistry
from bson.decimal128 import Decimal128
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.domain.models.account import Account
from app.domain.models.position import Position, PositionStatus, ExitReason
from app.domain.models.ledger_entry import LedgerEntry
from app.infrastructure.db.ledger_store import LedgerStore
from app.shared.exceptions import (
    AccountAlreadyExistsError,
    AccountNotFoundError,
    InsufficientFundsError,
    DatabaseError,
)
from app.shared.models import utc_now
from app.utils.logger import get_logger

logger = get_logger(__name__)

# Collection names
ACCOUNTS_COLLECTION = "accounts"
POSITIONS_COLLECTION = "positions"
LEDGER_COLLECTION = "ledger_entries"


class DecimalCodec(TypeCodec):
    """Encode Decimal as BSON Decimal128 and decode it back to Decimal."""

    python_type = Decimal
    bson_type = Decimal128

    def transform_python(self, value: Decimal) -> Decimal128:
        return Decimal128(value)

    def transform_bson(self, value: Decimal128) -> Decimal:
        return value.to_decimal()


CODEC_OPTIONS = CodecOptions(
    type_registry=TypeRegistry([DecimalCodec()]),
    tz_aware=True,
)


def to_document(model) -> Dict[str, Any]:
    """Domain model -> MongoDB document (`id` becomes `_id`)."""
    data = model.model_dump()
    data["_id"] = data.pop("id")
    return data


def from_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """MongoDB document -> domain model kwargs (`_id` becomes `id`)."""
    data = dict(data)
    data["id"] = str(data.pop("_id"))
    return data


class MongoLedgerStore(LedgerStore):
    """
    MongoDB ledger store.

    Usage:
        db = await connect_to_mongodb()
        store = MongoLedgerStore(get_client(), db)
        await store.initialize()
    """

    def __init__(self, client: AsyncIOMotorClient, db: AsyncIOMotorDatabase):
        """
        Initialize store.

        Args:
            client: Motor client (sessions are started from it)
            db: Database holding the ledger collections
        """
        self.client = client
        self.db = db
        self.accounts = db.get_collection(ACCOUNTS_COLLECTION, codec_options=CODEC_OPTIONS)
        self.positions = db.get_collection(POSITIONS_COLLECTION, codec_options=CODEC_OPTIONS)
        self.ledger = db.get_collection(LEDGER_COLLECTION, codec_options=CODEC_OPTIONS)

    async def initialize(self) -> None:
        """
        Create indexes for collections.

        Wrapped in try/except to handle production scenarios where
        index creation might fail due to permissions. The unique
        ledger index is required for idempotent settlement, so any
        failure other than a permission problem is raised.
        """
        logger.info(f"Ensuring indexes for {self.db.name}...")

        try:
            await self.positions.create_index([("status", ASCENDING), ("symbol", ASCENDING)])
            await self.positions.create_index([("account_id", ASCENDING), ("status", ASCENDING), ("created_at", DESCENDING)])
            await self.positions.create_index([("status", ASCENDING), ("closing_started_at", ASCENDING)])
            await self.ledger.create_index("position_id", unique=True)
            await self.ledger.create_index([("account_id", ASCENDING), ("timestamp", DESCENDING)])

            logger.info(f"Indexes verified for {self.db.name}")
        except Exception as e:
            error_msg = str(e)
            # Permission errors are expected in some environments - log as debug
            if "not authorized" in error_msg.lower() or "unauthorized" in error_msg.lower():
                logger.debug(f"Index creation skipped for {self.db.name} (permission issue): {e}")
            else:
                logger.error(f"Failed to create indexes for {self.db.name}: {e}")
                raise

    # ==================== ACCOUNTS ====================

    async def create_account(
        self,
        balance: Decimal = Decimal("0"),
        account_id: Optional[str] = None
    ) -> Account:
        account = Account(balance=balance) if account_id is None else Account(id=account_id, balance=balance)
        try:
            await self.accounts.insert_one(to_document(account))
        except DuplicateKeyError:
            raise AccountAlreadyExistsError(f"Account {account.id} already exists")
        logger.debug(f"Account {account.id} created with balance {balance}")
        return account

    async def get_account(self, account_id: str) -> Optional[Account]:
        data = await self.accounts.find_one({"_id": account_id})
        return Account(**from_document(data)) if data else None

    # ==================== POSITIONS ====================

    async def open_position(self, position: Position) -> Position:
        now = utc_now()
        stored = position.model_copy(deep=True)
        stored.status = PositionStatus.OPEN
        stored.opened_at = now
        stored.updated_at = now
        document = to_document(stored)

        async def _open(session):
            result = await self.accounts.update_one(
                {"_id": stored.account_id, "balance": {"$gte": stored.margin}},
                {"$inc": {"balance": -stored.margin}, "$set": {"updated_at": now}},
                session=session
            )
            if result.modified_count == 0:
                exists = await self.accounts.find_one({"_id": stored.account_id}, {"_id": 1}, session=session)
                if not exists:
                    raise AccountNotFoundError(f"Account {stored.account_id} not found")
                raise InsufficientFundsError(
                    f"Balance is below required margin {stored.margin}"
                )
            await self.positions.insert_one(document, session=session)

        async with await self.client.start_session() as session:
            await session.with_transaction(_open)

        return stored

    async def get_position(self, position_id: str) -> Optional[Position]:
        data = await self.positions.find_one({"_id": position_id})
        return Position(**from_document(data)) if data else None

    async def find_positions(
        self,
        status: Optional[PositionStatus] = None,
        account_id: Optional[str] = None,
        symbol: Optional[str] = None
    ) -> List[Position]:
        filter: Dict[str, Any] = {}
        if status is not None:
            filter["status"] = PositionStatus(status).value
        if account_id is not None:
            filter["account_id"] = account_id
        if symbol is not None:
            filter["symbol"] = symbol

        if status == PositionStatus.CLOSED:
            sort = [("closed_at", DESCENDING)]
        else:
            sort = [("created_at", ASCENDING)]

        cursor = self.positions.find(filter).sort(sort)
        docs = await cursor.to_list(length=None)
        return [Position(**from_document(doc)) for doc in docs]

    async def claim_for_close(
        self,
        position_id: str,
        exit_price: Decimal,
        reason: ExitReason,
        claimed_at: datetime
    ) -> Optional[Position]:
        data = await self.positions.find_one_and_update(
            {"_id": position_id, "status": PositionStatus.OPEN.value},
            {
                "$set": {
                    "status": PositionStatus.CLOSING.value,
                    "pending_exit_price": exit_price,
                    "pending_exit_reason": ExitReason(reason).value,
                    "closing_started_at": claimed_at,
                    "updated_at": claimed_at,
                }
            },
            return_document=ReturnDocument.AFTER
        )
        return Position(**from_document(data)) if data else None

    async def commit_settlement(
        self,
        position: Position,
        entry: LedgerEntry,
        exit_price: Decimal,
        pnl: Decimal,
        closed_at: datetime
    ) -> bool:
        closed_fields = {
            "status": PositionStatus.CLOSED.value,
            "exit_price": exit_price,
            "pnl": pnl,
            "close_reason": ExitReason(entry.reason).value,
            "closed_at": closed_at,
            "updated_at": closed_at,
        }

        async def _settle(session) -> bool:
            existing = await self.ledger.find_one({"position_id": position.id}, session=session)
            if existing:
                # Already settled. Make sure the position reflects it.
                await self.positions.update_one(
                    {"_id": position.id, "status": PositionStatus.CLOSING.value},
                    {"$set": closed_fields},
                    session=session
                )
                return False

            result = await self.positions.update_one(
                {"_id": position.id, "status": PositionStatus.CLOSING.value},
                {"$set": closed_fields},
                session=session
            )
            if result.matched_count == 0:
                raise DatabaseError(f"Position {position.id} is not in closing state")

            await self.ledger.insert_one(to_document(entry), session=session)

            credit = await self.accounts.update_one(
                {"_id": position.account_id},
                {"$inc": {"balance": entry.amount}, "$set": {"updated_at": closed_at}},
                session=session
            )
            if credit.matched_count == 0:
                raise AccountNotFoundError(f"Account {position.account_id} not found")
            return True

        try:
            async with await self.client.start_session() as session:
                return await session.with_transaction(_settle)
        except DuplicateKeyError:
            # A concurrent settlement inserted the ledger entry first
            logger.info(f"Settlement for position {position.id} already committed")
            return False

    async def find_stuck_closing(self, older_than: datetime) -> List[Position]:
        cursor = self.positions.find({
            "status": PositionStatus.CLOSING.value,
            "closing_started_at": {"$lte": older_than},
        }).sort([("closing_started_at", ASCENDING)])
        docs = await cursor.to_list(length=None)
        return [Position(**from_document(doc)) for doc in docs]

    # ==================== LEDGER ====================

    async def get_ledger_entry(self, position_id: str) -> Optional[LedgerEntry]:
        data = await self.ledger.find_one({"position_id": position_id})
        return LedgerEntry(**from_document(data)) if data else None

    async def find_ledger_entries(self, account_id: str) -> List[LedgerEntry]:
        cursor = self.ledger.find({"account_id": account_id}).sort([("timestamp", DESCENDING)])
        docs = await cursor.to_list(length=None)
        return [LedgerEntry(**from_document(doc)) for doc in docs]
