"""Upsert/read access to the latest payload per asset category."""

import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.database.models import MarketDataRecord
from src.models.market_data import StoredRecord
from src.utils.logger import StructuredLogger

logger = StructuredLogger("MarketDataStore")


class StoreError(Exception):
    """The store could not be read or written."""


class MarketDataStore:
    """Keyed store of the latest RawQuote-shaped payload for each category."""

    def __init__(self, db_session: Session):
        """
        Initialize the store.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db_session = db_session

    def upsert_many(self, updates: Mapping[str, dict[str, Any]]) -> list[str]:
        """
        Insert or replace one row per category in a single transaction.

        Args:
            updates: Payload per category

        Returns:
            Categories written, in input order

        Raises:
            StoreError: If the transaction fails; nothing is written
        """
        if not updates:
            return []

        now = datetime.now(timezone.utc)
        try:
            for category, payload in updates.items():
                self.db_session.merge(
                    MarketDataRecord(
                        category=category,
                        payload=json.dumps(payload, ensure_ascii=False),
                        updated_at=now,
                    )
                )
            self.db_session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            self.db_session.rollback()
            logger.error(
                "Failed to write market data",
                context={"categories": list(updates)},
                exception=e,
            )
            raise StoreError(f"Failed to write market data: {e}") from e

        logger.debug(
            f"Stored {len(updates)} market data rows",
            context={"categories": list(updates)},
        )
        return list(updates)

    def read_all(self) -> list[StoredRecord]:
        """
        Read every stored row.

        Raises:
            StoreError: If the store cannot be queried
        """
        try:
            records = self.db_session.query(MarketDataRecord).all()
        except SQLAlchemyError as e:
            logger.error("Failed to read market data", exception=e)
            raise StoreError(f"Failed to read market data: {e}") from e

        return [self._to_stored(record) for record in records]

    def get(self, category: str) -> StoredRecord | None:
        """
        Read one row by category.

        Raises:
            StoreError: If the store cannot be queried
        """
        try:
            record = self.db_session.get(MarketDataRecord, category)
        except SQLAlchemyError as e:
            logger.error(
                "Failed to read market data",
                context={"category": category},
                exception=e,
            )
            raise StoreError(f"Failed to read market data: {e}") from e

        return self._to_stored(record) if record is not None else None

    @staticmethod
    def _to_stored(record: MarketDataRecord) -> StoredRecord:
        try:
            payload = json.loads(record.payload)
        except (json.JSONDecodeError, TypeError):
            logger.warning(
                "Stored payload is not valid JSON",
                context={"category": record.category},
            )
            payload = None

        return StoredRecord(
            category=record.category,
            payload=payload,
            updated_at=record.updated_at,
        )
