from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from daily_close.errors import NotFoundError, PersistenceError, ValidationError
from daily_close.models import Branch, BranchStatus, CommissionMode, Company, Employee
from daily_close.services.commission_service import resolve_commission_mode


@dataclass(frozen=True)
class BranchContext:
    """Active company/branch and acting identity, passed into every operation."""

    company_id: int
    branch_id: int | None
    actor: str
    commission_mode: CommissionMode = CommissionMode.TRANSACTIONAL


def list_selectable_branches(db: Session, *, company_id: int) -> list[Branch]:
    return db.execute(
        select(Branch)
        .where(Branch.company_id == company_id, Branch.status != BranchStatus.PERMANENTLY_CLOSED)
        .order_by(Branch.name.asc())
    ).scalars().all()


def list_branches(db: Session, *, company_id: int) -> list[Branch]:
    return db.execute(select(Branch).where(Branch.company_id == company_id).order_by(Branch.name.asc())).scalars().all()


def get_entry_branch(db: Session, *, company_id: int, branch_id: int | None) -> Branch:
    if not branch_id:
        raise ValidationError('Select a branch')
    branch = db.execute(
        select(Branch).where(Branch.id == branch_id, Branch.company_id == company_id)
    ).scalar_one_or_none()
    if not branch:
        raise NotFoundError('Branch not found')
    if branch.status == BranchStatus.PERMANENTLY_CLOSED:
        raise ValidationError('Branch is permanently closed')
    return branch


def list_employees(db: Session, *, company_id: int) -> list[Employee]:
    try:
        return db.execute(
            select(Employee).where(Employee.company_id == company_id).order_by(Employee.name.asc(), Employee.id.asc())
        ).scalars().all()
    except SQLAlchemyError as exc:
        raise PersistenceError('Could not load employees') from exc


def get_company_commission_mode(db: Session, *, company_id: int) -> CommissionMode:
    configured = db.execute(select(Company.commission_mode).where(Company.id == company_id)).scalar_one_or_none()
    return resolve_commission_mode(configured)


def build_branch_context(db: Session, *, company_id: int, branch_id: int | None, actor: str) -> BranchContext:
    return BranchContext(
        company_id=company_id,
        branch_id=branch_id,
        actor=actor,
        commission_mode=get_company_commission_mode(db, company_id=company_id),
    )
