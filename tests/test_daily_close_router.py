from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select

from daily_close.auth import Principal, Role, get_current_principal
from daily_close.db import get_db
from daily_close.dependencies import get_source
from daily_close.models import (
    AuditLog,
    BranchStatus,
    CommissionMode,
    Company,
    DailyRecord,
    StylistServiceEntry,
    VoucherStatus,
    VoucherType,
)
from daily_close.routers import daily_close
from daily_close.services.mock_transaction_source import MockTransactionSource
from daily_close.services.transaction_source import VoucherItemRow, VoucherRow
from tests.db_support import add_employee, make_session_factory, seed_company


class DailyCloseRouterTests(unittest.TestCase):
    def setUp(self) -> None:
        self.session_factory = make_session_factory()
        with self.session_factory() as db:
            company, branches = seed_company(db, branch_names=('Olaya', 'Malaz', 'Old Town'))
            branches[2].status = BranchStatus.PERMANENTLY_CLOSED
            self.amal = add_employee(db, company, 'Amal')
            self.basma = add_employee(db, company, 'Basma', pro=True)
            db.commit()
            self.company_id = company.id
            self.olaya_id, self.malaz_id, self.closed_id = (branch.id for branch in branches)

        self.principal = Principal(
            id=7,
            username='huda',
            role=Role.MANAGER,
            company_id=self.company_id,
            branch_id=None,
            active=True,
            display_name='Huda',
        )
        self.source = MockTransactionSource(vouchers=[], items=[])

        def override_db():
            with self.session_factory() as db:
                yield db

        app = FastAPI()
        app.include_router(daily_close.router)
        app.dependency_overrides[get_current_principal] = lambda: self.principal
        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_source] = lambda: self.source
        self.client = TestClient(app)

    def _audit_actions(self) -> list[str]:
        with self.session_factory() as db:
            return [row.action for row in db.execute(select(AuditLog).order_by(AuditLog.id)).scalars()]

    def test_save_then_close_flow(self) -> None:
        url = f'/daily-close/{self.olaya_id}/2024-01-02'
        loaded = self.client.get(url)
        self.assertEqual(loaded.status_code, 200)
        self.assertEqual(loaded.json()['status'], 'NOT_STARTED')

        saved = self.client.post(
            f'{url}/save',
            json={
                'opening_cash': '1000',
                'cash_received': '200',
                'cash_sales': '300',
                'expenses': '100',
                'drawings': '50',
                'purchases': '150',
                'closing_cash_actual': '1150',
            },
        )
        self.assertEqual(saved.status_code, 200, saved.text)
        body = saved.json()
        self.assertEqual(body['status'], 'OPEN')
        self.assertEqual(body['opened_by'], 'Huda')
        self.assertEqual(Decimal(body['totals']['system_cash']), Decimal('1200.00'))
        self.assertEqual(Decimal(body['totals']['difference']), Decimal('-50.00'))

        closed = self.client.post(f'{url}/close', json={'version': body['version']})
        self.assertEqual(closed.status_code, 200, closed.text)
        self.assertEqual(closed.json()['status'], 'CLOSED')
        self.assertEqual(closed.json()['closed_by'], 'Huda')
        # Untouched fields keep their saved values.
        self.assertEqual(Decimal(closed.json()['fields']['cash_sales']), Decimal('300.00'))

        self.assertEqual(self._audit_actions(), ['DAILY_RECORD_SAVED', 'DAILY_RECORD_CLOSED'])

        next_day = self.client.get(f'/daily-close/{self.olaya_id}/2024-01-03').json()
        self.assertEqual(Decimal(next_day['fields']['opening_cash']), Decimal('1150.00'))
        self.assertEqual(next_day['carried_forward_from'], '2024-01-02')

    def test_stale_version_conflicts(self) -> None:
        url = f'/daily-close/{self.olaya_id}/2024-01-02'
        self.assertEqual(self.client.post(f'{url}/save', json={}).status_code, 200)
        response = self.client.post(f'{url}/save', json={'version': 42})
        self.assertEqual(response.status_code, 409)

    def test_invalid_amount_is_a_bad_request(self) -> None:
        response = self.client.post(f'/daily-close/{self.olaya_id}/2024-01-02/save', json={'cash_sales': 'abc'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('cash_sales', response.json()['detail'])
        self.assertEqual(self._audit_actions(), [])

    def test_preview_treats_junk_as_zero(self) -> None:
        response = self.client.post('/daily-close/preview', json={'opening_cash': '', 'cash_sales': 'abc', 'cash_received': '25'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(Decimal(body['system_cash']), Decimal('25.00'))
        self.assertIsNone(body['display_difference'])
        self.assertFalse(body['variance_counted'])

    def test_autofill_without_vouchers_returns_notice(self) -> None:
        response = self.client.post(f'/daily-close/{self.olaya_id}/2024-01-02/autofill', json={'cash_sales': '12'})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertFalse(body['found'])
        self.assertEqual(body['notice'], 'No vouchers found for this date')
        self.assertEqual(body['fields'], {'cash_sales': '12'})
        self.assertEqual(self._audit_actions(), ['DAILY_RECORD_AUTOFILL_EMPTY'])

    def test_autofill_suggests_voucher_totals(self) -> None:
        self.source = MockTransactionSource(
            vouchers=[VoucherRow(1, self.olaya_id, date(2024, 1, 2), VoucherType.SALES, VoucherStatus.CONFIRMED, Decimal('450'))],
            items=[],
        )
        body = self.client.post(f'/daily-close/{self.olaya_id}/2024-01-02/autofill', json={}).json()
        self.assertTrue(body['found'])
        self.assertEqual(Decimal(body['suggestions']['cash_sales']), Decimal('450.00'))
        self.assertEqual(Decimal(body['totals']['system_cash']), Decimal('450.00'))

    def test_commissions_can_be_applied_to_expenses(self) -> None:
        self.source = MockTransactionSource(
            vouchers=[VoucherRow(1, self.olaya_id, date(2024, 1, 2), VoucherType.SALES, VoucherStatus.CONFIRMED, Decimal('450'))],
            items=[VoucherItemRow(1, Decimal('5'), self.amal.id), VoucherItemRow(1, Decimal('3'), self.basma.id)],
        )
        response = self.client.post(
            f'/daily-close/{self.olaya_id}/2024-01-02/commissions',
            json={'employee_expenses': '20', 'apply_to_expenses': True},
        )
        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertEqual(body['mode'], 'TRANSACTIONAL')
        self.assertEqual(Decimal(body['total_payable_today']), Decimal('5.00'))
        self.assertEqual(Decimal(body['total_accrued']), Decimal('3.00'))
        self.assertEqual(Decimal(body['employee_expenses']), Decimal('25.00'))
        self.assertEqual(Decimal(body['commission_applied']), Decimal('5.00'))

    def test_history_and_csv_export(self) -> None:
        self.client.post(f'/daily-close/{self.olaya_id}/2024-01-02/close', json={'cash_sales': '300', 'closing_cash_actual': '300'})

        history = self.client.get('/daily-close/history', params={'from': '2024-01-01', 'to': '2024-01-31'})
        self.assertEqual(history.status_code, 200)
        rows = history.json()['rows']
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['branch_name'], 'Olaya')

        export = self.client.get('/daily-close/history/export.csv', params={'from': '2024-01-01', 'to': '2024-01-31'})
        self.assertEqual(export.status_code, 200)
        self.assertTrue(export.headers['content-type'].startswith('text/csv'))
        self.assertIn('branch-records-2024-01-01-to-2024-01-31.csv', export.headers['content-disposition'])
        lines = export.text.strip().splitlines()
        self.assertTrue(lines[0].startswith('Date,Branch,Narration'))
        self.assertEqual(len(lines), 2)
        self.assertIn('DAILY_RECORDS_EXPORTED_CSV', self._audit_actions())

    def test_history_rejects_reversed_range(self) -> None:
        response = self.client.get('/daily-close/history', params={'from': '2024-02-01', 'to': '2024-01-01'})
        self.assertEqual(response.status_code, 400)

    def test_history_rejects_non_numeric_branch_filter(self) -> None:
        response = self.client.get('/daily-close/history', params={'branch_id': 'abc'})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['detail'], 'Invalid branch filter')

    def test_negative_applied_commission_is_a_bad_request(self) -> None:
        self._use_manual_mode()
        response = self.client.post(f'/daily-close/{self.olaya_id}/2024-01-02/save', json={'commission_applied': '-5'})
        self.assertEqual(response.status_code, 400)
        self.assertIn('commission_applied', response.json()['detail'])
        with self.session_factory() as db:
            self.assertEqual(db.execute(select(DailyRecord)).scalars().all(), [])
        self.assertEqual(self._audit_actions(), [])

    def _use_manual_mode(self) -> None:
        with self.session_factory() as db:
            db.get(Company, self.company_id).commission_mode = CommissionMode.MANUAL
            db.commit()

    def _stored_entry_ids(self) -> list[int]:
        with self.session_factory() as db:
            return [row.id for row in db.execute(select(StylistServiceEntry).order_by(StylistServiceEntry.id)).scalars()]

    def test_manual_entries_omitted_on_resave_are_deleted(self) -> None:
        self._use_manual_mode()
        url = f'/daily-close/{self.olaya_id}/2024-01-02'
        first = self.client.post(
            f'{url}/save',
            json={
                'stylist_entries': [
                    {'stylist_id': self.amal.id, 'service_count': 4},
                    {'stylist_id': self.amal.id, 'service_count': 6},
                ]
            },
        )
        self.assertEqual(first.status_code, 200, first.text)
        entries = first.json()['stylist_entries']
        self.assertEqual(len(entries), 2)
        self.assertTrue(all(entry['id'] is not None for entry in entries))

        summary = self.client.post(f'{url}/commissions', json={}).json()
        self.assertEqual(summary['mode'], 'MANUAL')
        self.assertEqual([Decimal(line['service_count']) for line in summary['lines']], [Decimal('4'), Decimal('6')])
        self.assertEqual(Decimal(summary['total_payable_today']), Decimal('10.00'))

        kept = entries[0]
        second = self.client.post(f'{url}/save', json={'stylist_entries': [kept]})
        self.assertEqual(second.status_code, 200, second.text)
        self.assertEqual([entry['id'] for entry in second.json()['stylist_entries']], [kept['id']])

        reloaded = self.client.get(url).json()
        self.assertEqual([entry['id'] for entry in reloaded['stylist_entries']], [kept['id']])
        self.assertEqual(self._stored_entry_ids(), [kept['id']])

        summary = self.client.post(f'{url}/commissions', json={}).json()
        self.assertEqual(len(summary['lines']), 1)
        self.assertEqual(summary['lines'][0]['tier'], 'NORMAL')
        self.assertEqual(Decimal(summary['total_payable_today']), Decimal('4.00'))

    def test_manual_entries_can_be_deleted_by_id(self) -> None:
        self._use_manual_mode()
        url = f'/daily-close/{self.olaya_id}/2024-01-02'
        saved = self.client.post(
            f'{url}/save',
            json={
                'stylist_entries': [
                    {'stylist_id': self.amal.id, 'service_count': 2},
                    {'stylist_id': self.basma.id, 'service_count': 3},
                ]
            },
        ).json()
        first_id, second_id = (entry['id'] for entry in saved['stylist_entries'])

        response = self.client.post(f'{url}/save', json={'deleted_entry_ids': [second_id]})

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual([entry['id'] for entry in response.json()['stylist_entries']], [first_id])
        self.assertEqual(self._stored_entry_ids(), [first_id])

    def test_branch_list_hides_permanently_closed(self) -> None:
        names = [row['name'] for row in self.client.get('/daily-close/branches').json()]
        self.assertEqual(names, ['Malaz', 'Olaya'])
        all_names = [row['name'] for row in self.client.get('/daily-close/history/branches').json()]
        self.assertIn('Old Town', all_names)

    def test_permanently_closed_branch_cannot_be_opened(self) -> None:
        response = self.client.get(f'/daily-close/{self.closed_id}/2024-01-02')
        self.assertEqual(response.status_code, 400)

    def test_unknown_branch_is_not_found(self) -> None:
        response = self.client.get('/daily-close/9999/2024-01-02')
        self.assertEqual(response.status_code, 404)

    def test_branch_role_is_scoped_to_its_branch(self) -> None:
        self.principal = Principal(
            id=8,
            username='olaya-desk',
            role=Role.BRANCH,
            company_id=self.company_id,
            branch_id=self.olaya_id,
            active=True,
        )
        self.assertEqual(self.client.get(f'/daily-close/{self.olaya_id}/2024-01-02').status_code, 200)
        self.assertEqual(self.client.get(f'/daily-close/{self.malaz_id}/2024-01-02').status_code, 403)
        self.assertEqual(
            [row['id'] for row in self.client.get('/daily-close/branches').json()],
            [self.olaya_id],
        )


if __name__ == '__main__':
    unittest.main()
