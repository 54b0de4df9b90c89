from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from daily_close.auth import Principal, Role, assert_branch_scope, require_role, scoped_branch_id
from daily_close.config import settings
from daily_close.db import get_db
from daily_close.dependencies import get_client_ip, get_source
from daily_close.errors import (
    ClosedRecordError,
    ConcurrentUpdateError,
    DailyCloseError,
    NotFoundError,
    ValidationError,
)
from daily_close.models import DailyRecordStatus
from daily_close.schemas import (
    AutofillOut,
    BranchOut,
    CommissionLineOut,
    CommissionRequestIn,
    CommissionSummaryOut,
    DailyRecordIn,
    DailyRecordOut,
    HistoryOut,
    HistoryRowOut,
    RecordFieldsIn,
    StylistEntryOut,
    TotalsOut,
)
from daily_close.services.audit_service import log_audit
from daily_close.services.commission_service import CommissionSummary, apply_payable_to_expenses
from daily_close.services.daily_record_service import (
    DailyRecordDraft,
    StylistEntryDraft,
    close_daily_record,
    compute_draft_commissions,
    load_daily_record,
    save_daily_record,
)
from daily_close.services.directory_service import (
    BranchContext,
    build_branch_context,
    get_entry_branch,
    list_branches,
    list_selectable_branches,
)
from daily_close.services.history_service import (
    export_filename,
    query_history,
    render_history_csv,
    summarize_history,
)
from daily_close.services.reconciliation_service import Totals, autofill_from_transactions, reconcile
from daily_close.services.transaction_source import TransactionSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/daily-close', tags=['daily-close'])
daily_close_access = require_role(Role.ADMIN, Role.MANAGER, Role.BRANCH)


def _http_error(exc: DailyCloseError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ClosedRecordError, ConcurrentUpdateError)):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=503, detail='Could not save, please try again')


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Commit failed')
        raise HTTPException(status_code=503, detail='Could not save, please try again') from exc


def _context(db: Session, principal: Principal, branch_id: int | None) -> BranchContext:
    if branch_id:
        assert_branch_scope(principal, branch_id)
    return build_branch_context(db, company_id=principal.company_id, branch_id=branch_id, actor=principal.identity)


def _totals_out(totals: Totals) -> TotalsOut:
    return TotalsOut(
        total_sales=totals.total_sales,
        total_outflow=totals.total_outflow,
        system_cash=totals.system_cash,
        difference=totals.difference,
        display_difference=totals.display_difference,
        variance_counted=totals.variance_counted,
    )


def _record_out(draft: DailyRecordDraft, context: BranchContext) -> DailyRecordOut:
    return DailyRecordOut(
        branch_id=draft.branch_id,
        record_date=draft.record_date,
        status=draft.state,
        record_id=draft.record_id,
        version=draft.version,
        opened_by=draft.opened_by,
        closed_by=draft.closed_by,
        carried_forward_from=draft.carried_forward_from,
        commission_mode=context.commission_mode.value,
        commission_applied=draft.commission_applied,
        fields=draft.fields,
        stylist_entries=[
            StylistEntryOut(id=entry.id, stylist_id=entry.stylist_id, service_count=int(entry.service_count))
            for entry in draft.stylist_entries
        ],
        totals=_totals_out(draft.totals()),
    )


def _commission_out(summary: CommissionSummary, context: BranchContext) -> CommissionSummaryOut:
    return CommissionSummaryOut(
        mode=context.commission_mode.value,
        rate=summary.rate,
        lines=[
            CommissionLineOut(
                employee_id=line.employee_id,
                name=line.name,
                tier=line.tier.value,
                service_count=line.service_count,
                commission_amount=line.commission_amount,
                is_payable_today=line.is_payable_today,
            )
            for line in summary.lines
        ],
        total_payable_today=summary.total_payable_today,
        total_accrued=summary.total_accrued,
        total_commission=summary.total_commission,
    )


def _draft_from_body(db: Session, context: BranchContext, record_date: date, body: DailyRecordIn) -> DailyRecordDraft:
    draft = load_daily_record(db, context, record_date)
    draft.fields.update(body.record_fields())
    if body.version is not None:
        draft.version = body.version
    if body.commission_applied is not None:
        draft.commission_applied = body.commission_applied

    deleted = list(body.deleted_entry_ids)
    if body.stylist_entries is not None:
        submitted_ids = {entry.id for entry in body.stylist_entries if entry.id is not None}
        deleted.extend(entry.id for entry in draft.stylist_entries if entry.id is not None and entry.id not in submitted_ids)
        draft.stylist_entries = [
            StylistEntryDraft(stylist_id=entry.stylist_id, service_count=entry.service_count, id=entry.id)
            for entry in body.stylist_entries
        ]
    draft.pending_deletions = sorted(set(deleted))
    draft.stylist_entries = [entry for entry in draft.stylist_entries if entry.id is None or entry.id not in draft.pending_deletions]
    return draft


@router.get('/branches', response_model=list[BranchOut])
def branches(
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    rows = list_selectable_branches(db, company_id=principal.company_id)
    if principal.is_branch_bound:
        rows = [row for row in rows if row.id == principal.branch_id]
    return [BranchOut(id=row.id, name=row.name, status=row.status.value) for row in rows]


@router.post('/preview', response_model=TotalsOut)
def preview(
    body: RecordFieldsIn,
    _: Principal = Depends(daily_close_access),
):
    return _totals_out(reconcile(body.record_fields()))


@router.get('/history', response_model=HistoryOut)
def history(
    request: Request,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    branch_id, from_date, to_date = _history_filters(request, principal)
    try:
        rows = query_history(db, company_id=principal.company_id, branch_id=branch_id, from_date=from_date, to_date=to_date)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc
    return HistoryOut(
        from_date=from_date,
        to_date=to_date,
        branch_id=branch_id,
        rows=[HistoryRowOut.model_validate(row) for row in rows],
        summary=summarize_history(rows),
    )


@router.get('/history/export.csv')
def history_export(
    request: Request,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    branch_id, from_date, to_date = _history_filters(request, principal)
    try:
        rows = query_history(db, company_id=principal.company_id, branch_id=branch_id, from_date=from_date, to_date=to_date)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc

    log_audit(
        db,
        principal=principal,
        action='DAILY_RECORDS_EXPORTED_CSV',
        branch_id=branch_id,
        ip=get_client_ip(request),
        metadata={'rows': len(rows), 'from': from_date.isoformat(), 'to': to_date.isoformat()},
    )
    _commit(db)

    return StreamingResponse(
        iter([render_history_csv(rows)]),
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename={export_filename(from_date, to_date)}'},
    )


def _history_filters(request: Request, principal: Principal) -> tuple[int | None, date, date]:
    branch_raw = request.query_params.get('branch_id', '').strip()
    from_raw = request.query_params.get('from', '').strip()
    to_raw = request.query_params.get('to', '').strip()
    if branch_raw and not branch_raw.isdigit():
        raise HTTPException(status_code=400, detail='Invalid branch filter')
    branch_id = scoped_branch_id(principal, int(branch_raw) if branch_raw else None)
    today = datetime.now(tz=timezone.utc).date()
    try:
        from_date = date.fromisoformat(from_raw) if from_raw else today - timedelta(days=settings.history_default_days)
        to_date = date.fromisoformat(to_raw) if to_raw else today
    except ValueError as exc:
        raise HTTPException(status_code=400, detail='Invalid date filter') from exc
    return branch_id, from_date, to_date


@router.get('/history/branches', response_model=list[BranchOut])
def history_branches(
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    return [BranchOut(id=row.id, name=row.name, status=row.status.value) for row in list_branches(db, company_id=principal.company_id)]


@router.get('/{branch_id}/{record_date}', response_model=DailyRecordOut)
def load_record(
    branch_id: int,
    record_date: date,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    context = _context(db, principal, branch_id)
    try:
        get_entry_branch(db, company_id=context.company_id, branch_id=branch_id)
        draft = load_daily_record(db, context, record_date)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc
    return _record_out(draft, context)


@router.post('/{branch_id}/{record_date}/autofill', response_model=AutofillOut)
def autofill(
    branch_id: int,
    record_date: date,
    body: RecordFieldsIn,
    request: Request,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
    source: TransactionSource = Depends(get_source),
):
    context = _context(db, principal, branch_id)
    try:
        get_entry_branch(db, company_id=context.company_id, branch_id=branch_id)
        result = autofill_from_transactions(source, branch_id=branch_id, on_date=record_date)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc

    fields = result.apply_to(body.record_fields())
    log_audit(
        db,
        principal=principal,
        action='DAILY_RECORD_AUTOFILLED' if result.found else 'DAILY_RECORD_AUTOFILL_EMPTY',
        branch_id=branch_id,
        ip=get_client_ip(request),
        metadata={'date': record_date.isoformat(), 'vouchers': result.voucher_count},
    )
    _commit(db)
    return AutofillOut(
        found=result.found,
        notice=result.notice,
        voucher_count=result.voucher_count,
        suggestions=result.suggestions,
        fields=fields,
        totals=_totals_out(reconcile(fields)),
    )


@router.post('/{branch_id}/{record_date}/commissions', response_model=CommissionSummaryOut)
def commissions(
    branch_id: int,
    record_date: date,
    body: CommissionRequestIn,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
    source: TransactionSource = Depends(get_source),
):
    context = _context(db, principal, branch_id)
    try:
        get_entry_branch(db, company_id=context.company_id, branch_id=branch_id)
        draft = _draft_from_body(db, context, record_date, body)
        summary = compute_draft_commissions(db, context, draft, source)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc

    out = _commission_out(summary, context)
    if body.apply_to_expenses:
        out.employee_expenses = apply_payable_to_expenses(draft, summary)
        out.commission_applied = draft.commission_applied
    return out


def _save(
    *,
    branch_id: int,
    record_date: date,
    body: DailyRecordIn,
    request: Request,
    principal: Principal,
    db: Session,
    status: DailyRecordStatus,
) -> DailyRecordOut:
    context = _context(db, principal, branch_id)
    try:
        draft = _draft_from_body(db, context, record_date, body)
        if status == DailyRecordStatus.CLOSED:
            record = close_daily_record(db, context, draft)
        else:
            record = save_daily_record(db, context, draft)
    except DailyCloseError as exc:
        raise _http_error(exc) from exc

    log_audit(
        db,
        principal=principal,
        action='DAILY_RECORD_CLOSED' if status == DailyRecordStatus.CLOSED else 'DAILY_RECORD_SAVED',
        branch_id=branch_id,
        ip=get_client_ip(request),
        metadata={
            'daily_record_id': record.id,
            'date': record_date.isoformat(),
            'difference': str(record.difference),
            'stylist_entries': len(draft.stylist_entries),
        },
    )
    _commit(db)
    return _record_out(draft, context)


@router.post('/{branch_id}/{record_date}/save', response_model=DailyRecordOut)
def save_record(
    branch_id: int,
    record_date: date,
    body: DailyRecordIn,
    request: Request,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    return _save(
        branch_id=branch_id,
        record_date=record_date,
        body=body,
        request=request,
        principal=principal,
        db=db,
        status=DailyRecordStatus.OPEN,
    )


@router.post('/{branch_id}/{record_date}/close', response_model=DailyRecordOut)
def close_record(
    branch_id: int,
    record_date: date,
    body: DailyRecordIn,
    request: Request,
    principal: Principal = Depends(daily_close_access),
    db: Session = Depends(get_db),
):
    return _save(
        branch_id=branch_id,
        record_date=record_date,
        body=body,
        request=request,
        principal=principal,
        db=db,
        status=DailyRecordStatus.CLOSED,
    )
