from fastapi import Depends, Request
from sqlalchemy.orm import Session

from daily_close.db import get_db
from daily_close.services.source_factory import get_transaction_source
from daily_close.services.transaction_source import TransactionSource


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_source(db: Session = Depends(get_db)) -> TransactionSource:
    return get_transaction_source(db)
