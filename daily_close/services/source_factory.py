from __future__ import annotations

from sqlalchemy.orm import Session

from daily_close.config import settings
from daily_close.services.database_transaction_source import DatabaseTransactionSource
from daily_close.services.mock_transaction_source import MockTransactionSource
from daily_close.services.transaction_source import TransactionSource


def get_transaction_source(db: Session) -> TransactionSource:
    source = settings.transaction_source.strip().lower()
    if source == 'mock':
        return MockTransactionSource()
    return DatabaseTransactionSource(db)
