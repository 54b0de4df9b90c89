from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from daily_close.config import settings
from daily_close.errors import (
    ClosedRecordError,
    ConcurrentUpdateError,
    DailyCloseError,
    PartialBatchFailure,
    PersistenceError,
    ValidationError,
)
from daily_close.models import CommissionMode, DailyRecord, DailyRecordStatus, StylistServiceEntry
from daily_close.services.commission_service import (
    CommissionSummary,
    ManualContext,
    TransactionalContext,
    compute_commissions,
    resolve_commission_mode,
)
from daily_close.services.directory_service import BranchContext, get_entry_branch, list_employees
from daily_close.services.reconciliation_service import (
    MONEY_FIELDS,
    TEXT_FIELDS,
    ZERO,
    Totals,
    parse_amount,
    parse_record_fields,
    reconcile,
)
from daily_close.services.transaction_source import TransactionSource

logger = logging.getLogger(__name__)

NO_RECORD = 'NOT_STARTED'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def empty_fields() -> dict[str, object]:
    fields: dict[str, object] = {name: Decimal('0.00') for name in MONEY_FIELDS}
    fields.update({name: '' for name in TEXT_FIELDS})
    return fields


@dataclass
class StylistEntryDraft:
    stylist_id: int
    service_count: int
    id: int | None = None


@dataclass
class DailyRecordDraft:
    """In-memory working copy of one branch-date, kept intact across failed saves."""

    branch_id: int
    record_date: date
    fields: dict[str, object] = field(default_factory=empty_fields)
    status: DailyRecordStatus | None = None
    record_id: int | None = None
    version: int | None = None
    opened_by: str | None = None
    closed_by: str | None = None
    commission_applied: Decimal = ZERO
    stylist_entries: list[StylistEntryDraft] = field(default_factory=list)
    pending_deletions: list[int] = field(default_factory=list)
    carried_forward_from: date | None = None

    @property
    def state(self) -> str:
        return self.status.value if self.status else NO_RECORD

    def totals(self) -> Totals:
        return reconcile(self.fields)


@dataclass(frozen=True)
class StylistSyncResult:
    deleted: int
    updated: int
    created: int


def _find_record(db: Session, *, branch_id: int, record_date: date) -> DailyRecord | None:
    return db.execute(
        select(DailyRecord).where(DailyRecord.branch_id == branch_id, DailyRecord.record_date == record_date)
    ).scalar_one_or_none()


def get_previous_record(db: Session, *, branch_id: int, before: date) -> DailyRecord | None:
    return db.execute(
        select(DailyRecord)
        .where(DailyRecord.branch_id == branch_id, DailyRecord.record_date < before)
        .order_by(DailyRecord.record_date.desc())
        .limit(1)
    ).scalars().first()


def list_stylist_entries(db: Session, *, branch_id: int, entry_date: date) -> list[StylistServiceEntry]:
    return db.execute(
        select(StylistServiceEntry)
        .where(StylistServiceEntry.branch_id == branch_id, StylistServiceEntry.entry_date == entry_date)
        .order_by(StylistServiceEntry.id.asc())
    ).scalars().all()


def _draft_from_record(record: DailyRecord, entries: list[StylistServiceEntry]) -> DailyRecordDraft:
    fields: dict[str, object] = {name: getattr(record, name) or Decimal('0.00') for name in MONEY_FIELDS}
    fields.update({name: getattr(record, name) or '' for name in TEXT_FIELDS})
    return DailyRecordDraft(
        branch_id=record.branch_id,
        record_date=record.record_date,
        fields=fields,
        status=record.status,
        record_id=record.id,
        version=record.version,
        opened_by=record.opened_by,
        closed_by=record.closed_by,
        commission_applied=record.commission_applied or ZERO,
        stylist_entries=[
            StylistEntryDraft(stylist_id=entry.stylist_id, service_count=entry.service_count, id=entry.id)
            for entry in entries
        ],
    )


def load_daily_record(db: Session, context: BranchContext, on_date: date) -> DailyRecordDraft:
    if not context.branch_id:
        raise ValidationError('Select a branch')

    try:
        record = _find_record(db, branch_id=context.branch_id, record_date=on_date)
        if record:
            entries = list_stylist_entries(db, branch_id=context.branch_id, entry_date=on_date)
            return _draft_from_record(record, entries)
        previous = get_previous_record(db, branch_id=context.branch_id, before=on_date)
        entries = list_stylist_entries(db, branch_id=context.branch_id, entry_date=on_date)
    except SQLAlchemyError as exc:
        raise PersistenceError('Could not load daily record') from exc

    draft = DailyRecordDraft(
        branch_id=context.branch_id,
        record_date=on_date,
        stylist_entries=[
            StylistEntryDraft(stylist_id=entry.stylist_id, service_count=entry.service_count, id=entry.id)
            for entry in entries
        ],
    )
    if previous:
        draft.fields['opening_cash'] = previous.closing_cash_actual or Decimal('0.00')
        draft.carried_forward_from = previous.record_date
        logger.info(
            'Seeded opening cash for branch %s on %s from %s',
            context.branch_id,
            on_date.isoformat(),
            previous.record_date.isoformat(),
        )
    return draft


def _validate_service_count(service_count: object) -> int:
    if isinstance(service_count, bool):
        raise ValidationError('Service count must be a whole number')
    try:
        count = int(str(service_count).strip() or '0')
    except ValueError as exc:
        raise ValidationError('Service count must be a whole number') from exc
    if count < 0:
        raise ValidationError('Service count cannot be negative')
    return count


def add_stylist_entry(draft: DailyRecordDraft, *, stylist_id: int, service_count: object) -> StylistEntryDraft:
    if not stylist_id:
        raise ValidationError('Select a stylist')
    entry = StylistEntryDraft(stylist_id=stylist_id, service_count=_validate_service_count(service_count))
    draft.stylist_entries.append(entry)
    return entry


def update_stylist_entry(
    draft: DailyRecordDraft,
    index: int,
    *,
    stylist_id: int | None = None,
    service_count: object = None,
) -> StylistEntryDraft:
    try:
        entry = draft.stylist_entries[index]
    except IndexError as exc:
        raise ValidationError('Stylist entry not found') from exc
    if stylist_id is not None:
        entry.stylist_id = stylist_id
    if service_count is not None:
        entry.service_count = _validate_service_count(service_count)
    return entry


def remove_stylist_entry(draft: DailyRecordDraft, index: int) -> StylistEntryDraft:
    try:
        entry = draft.stylist_entries.pop(index)
    except IndexError as exc:
        raise ValidationError('Stylist entry not found') from exc
    if entry.id is not None and entry.id not in draft.pending_deletions:
        draft.pending_deletions.append(entry.id)
    return entry


def sync_stylist_entries(db: Session, draft: DailyRecordDraft) -> StylistSyncResult:
    """Delete queued entries, then update or create the working set.

    Deletions are flushed before any write. The draft (queue and new ids) is
    only touched once the whole batch went through, so a failed sync can be
    retried with the same draft.
    """
    pending = list(draft.pending_deletions)
    deleted_ids: list[int] = []
    stage = 'delete'
    created: list[tuple[StylistEntryDraft, StylistServiceEntry]] = []
    updated = 0
    now = _now()
    try:
        if pending:
            db.execute(
                delete(StylistServiceEntry).where(
                    StylistServiceEntry.id.in_(pending),
                    StylistServiceEntry.branch_id == draft.branch_id,
                    StylistServiceEntry.entry_date == draft.record_date,
                )
            )
            db.flush()
            deleted_ids = pending

        stage = 'write'
        persisted_ids = [entry.id for entry in draft.stylist_entries if entry.id is not None]
        existing = {
            row.id: row
            for row in db.execute(
                select(StylistServiceEntry).where(
                    StylistServiceEntry.id.in_(persisted_ids),
                    StylistServiceEntry.branch_id == draft.branch_id,
                    StylistServiceEntry.entry_date == draft.record_date,
                )
            ).scalars().all()
        } if persisted_ids else {}

        for entry in draft.stylist_entries:
            row = existing.get(entry.id) if entry.id is not None else None
            if row is None:
                if entry.id is not None:
                    logger.warning('Stylist entry %s no longer exists, recreating it', entry.id)
                row = StylistServiceEntry(
                    branch_id=draft.branch_id,
                    entry_date=draft.record_date,
                    stylist_id=entry.stylist_id,
                    service_count=entry.service_count,
                )
                db.add(row)
                created.append((entry, row))
                continue
            row.stylist_id = entry.stylist_id
            row.service_count = entry.service_count
            row.updated_at = now
            updated += 1
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception('Stylist entry sync failed during %s for branch %s', stage, draft.branch_id)
        raise PartialBatchFailure(
            'Could not save stylist entries',
            deleted_ids=deleted_ids,
            failed_stage=stage,
        ) from exc

    draft.pending_deletions.clear()
    for entry, row in created:
        entry.id = row.id

    logger.info(
        'Synced stylist entries for branch %s on %s: %s deleted, %s updated, %s created',
        draft.branch_id,
        draft.record_date.isoformat(),
        len(deleted_ids),
        updated,
        len(created),
    )
    return StylistSyncResult(deleted=len(deleted_ids), updated=updated, created=len(created))


def _persist(
    db: Session,
    context: BranchContext,
    draft: DailyRecordDraft,
    mode: CommissionMode | str | None,
    status: DailyRecordStatus,
) -> DailyRecord:
    if not context.branch_id:
        raise ValidationError('Select a branch')
    if draft.branch_id != context.branch_id:
        raise ValidationError('Draft belongs to a different branch')

    fields = parse_record_fields(draft.fields)
    commission_applied = parse_amount(draft.commission_applied, field_name='commission_applied')
    for entry in draft.stylist_entries:
        entry.service_count = _validate_service_count(entry.service_count)
    resolved_mode = resolve_commission_mode(mode or context.commission_mode)
    totals = reconcile(fields)
    now = _now()

    try:
        get_entry_branch(db, company_id=context.company_id, branch_id=context.branch_id)
        record = _find_record(db, branch_id=context.branch_id, record_date=draft.record_date)
        if record is None:
            if draft.record_id is not None:
                raise ConcurrentUpdateError('Daily record no longer exists')
            record = DailyRecord(
                company_id=context.company_id,
                branch_id=context.branch_id,
                record_date=draft.record_date,
                opened_by=context.actor or 'Unknown',
            )
            db.add(record)
        else:
            if draft.record_id is None or (draft.version is not None and record.version != draft.version):
                raise ConcurrentUpdateError('Daily record was changed by someone else, reload and try again')
            if record.status == DailyRecordStatus.CLOSED:
                if settings.lock_closed_records:
                    raise ClosedRecordError('Day is already closed')
                logger.warning(
                    'Editing closed daily record %s for branch %s on %s',
                    record.id,
                    record.branch_id,
                    record.record_date.isoformat(),
                )

        for name, value in fields.items():
            setattr(record, name, value)
        for name, value in totals.as_record_fields().items():
            setattr(record, name, value)
        record.commission_applied = commission_applied
        record.status = status
        record.updated_at = now
        if status == DailyRecordStatus.CLOSED:
            record.closed_by = context.actor
            record.closed_at = now
        db.flush()
    except DailyCloseError:
        raise
    except StaleDataError as exc:
        raise ConcurrentUpdateError('Daily record was changed by someone else, reload and try again') from exc
    except SQLAlchemyError as exc:
        logger.exception('Saving daily record failed for branch %s on %s', context.branch_id, draft.record_date)
        raise PersistenceError('Could not save daily record') from exc

    if resolved_mode == CommissionMode.MANUAL:
        sync_stylist_entries(db, draft)

    draft.fields = fields
    draft.commission_applied = commission_applied
    draft.record_id = record.id
    draft.version = record.version
    draft.status = record.status
    draft.opened_by = record.opened_by
    draft.closed_by = record.closed_by
    logger.info(
        'Daily record %s for branch %s on %s saved as %s',
        record.id,
        record.branch_id,
        record.record_date.isoformat(),
        status.value,
    )
    return record


def save_daily_record(
    db: Session,
    context: BranchContext,
    draft: DailyRecordDraft,
    mode: CommissionMode | str | None = None,
) -> DailyRecord:
    return _persist(db, context, draft, mode, DailyRecordStatus.OPEN)


def close_daily_record(
    db: Session,
    context: BranchContext,
    draft: DailyRecordDraft,
    mode: CommissionMode | str | None = None,
) -> DailyRecord:
    return _persist(db, context, draft, mode, DailyRecordStatus.CLOSED)


def compute_draft_commissions(
    db: Session,
    context: BranchContext,
    draft: DailyRecordDraft,
    source: TransactionSource,
    *,
    mode: CommissionMode | str | None = None,
    rate: Decimal | None = None,
) -> CommissionSummary:
    resolved = resolve_commission_mode(mode or context.commission_mode)
    employees = list_employees(db, company_id=context.company_id)
    if resolved == CommissionMode.MANUAL:
        return compute_commissions(resolved, ManualContext(entries=draft.stylist_entries, employees=employees), rate=rate)
    return compute_commissions(
        resolved,
        TransactionalContext(
            branch_id=draft.branch_id,
            on_date=draft.record_date,
            employees=employees,
            source=source,
        ),
        rate=rate,
    )
