import threading
from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import IntegrityError, connection, transaction
from django.test import TestCase, TransactionTestCase, override_settings, skipUnlessDBFeature
from django.urls import reverse

from apps.core.groups.models import ContributionGroup, GroupMembership
from apps.core.loans import services as loan_services
from apps.core.loans.models import Loan, LoanRepayment
from apps.core.loans.services import (
    delete_loan,
    derive_loan_state,
    group_loan_summary,
    issue_loan,
    loan_balance_check,
    record_repayment,
)
from apps.core.notifications.models import Notification
from apps.core.utils.errors import ConcurrencyConflictError, NotFoundError


class LoanFixtureMixin:
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.member = self.user_model.objects.create_user(username='kemi', password='pass12345')
        self.group = ContributionGroup.objects.create(name='Loan Circle', contribution_amount=Decimal('100.00'))
        GroupMembership.objects.create(group=self.group, user=self.member)

    def make_loan(self, principal='1000.00', **kwargs):
        return issue_loan(
            member_id=self.member.pk,
            group_id=self.group.pk,
            principal=principal,
            issued_by=self.admin,
            **kwargs
        )


class LoanIssueTests(LoanFixtureMixin, TestCase):
    def test_new_loan_starts_active_at_full_principal(self):
        with self.captureOnCommitCallbacks(execute=True):
            loan = self.make_loan(monthly_repayment='100')

        self.assertEqual(loan.outstanding_balance, Decimal('1000.00'))
        self.assertEqual(loan.status, Loan.STATUS_ACTIVE)
        self.assertEqual(loan.monthly_repayment, Decimal('100.00'))
        self.assertEqual(loan.issued_by, self.admin)
        notification = Notification.objects.get(user=self.member)
        self.assertEqual(notification.title, 'Loan Issued')
        self.assertEqual(notification.type, Notification.TYPE_LOAN)

    def test_invalid_loans_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.make_loan(principal='0')
        with self.assertRaises(ValidationError):
            self.make_loan(principal='10000000000')
        with self.assertRaises(ValidationError):
            self.make_loan(monthly_repayment='-10')
        with self.assertRaises(NotFoundError):
            issue_loan(member_id=self.member.pk + 100, group_id=self.group.pk, principal='10')
        self.assertFalse(Loan.objects.exists())

    def test_database_rejects_balance_above_principal(self):
        loan = self.make_loan()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Loan.objects.filter(pk=loan.pk).update(outstanding_balance=Decimal('1500.00'))

    def test_database_rejects_status_balance_mismatch(self):
        loan = self.make_loan()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Loan.objects.filter(pk=loan.pk).update(status=Loan.STATUS_PAID)


class LoanRepaymentTests(LoanFixtureMixin, TestCase):
    def test_repayments_reduce_balance_and_clamp_at_zero(self):
        loan = self.make_loan()

        first = record_repayment(loan_id=loan.pk, amount='400', recorded_by=self.admin)
        self.assertEqual(first['loan'].outstanding_balance, Decimal('600.00'))
        self.assertEqual(first['loan'].status, Loan.STATUS_ACTIVE)
        self.assertEqual(first['repayment'].balance_after, Decimal('600.00'))

        second = record_repayment(loan_id=loan.pk, amount='700', recorded_by=self.admin)
        self.assertEqual(second['loan'].outstanding_balance, Decimal('0.00'))
        self.assertEqual(second['loan'].status, Loan.STATUS_PAID)
        self.assertEqual(second['repayment'].amount, Decimal('700.00'))
        self.assertEqual(LoanRepayment.objects.filter(loan=loan).count(), 2)

    def test_derive_loan_state(self):
        self.assertEqual(derive_loan_state(Decimal('500.00'), Decimal('200.00')), (Decimal('300.00'), 'active'))
        self.assertEqual(derive_loan_state(Decimal('500.00'), Decimal('500.00')), (Decimal('0.00'), 'paid'))
        self.assertEqual(derive_loan_state(Decimal('100.00'), Decimal('250.00')), (Decimal('0.00'), 'paid'))

    def test_repayment_notifications(self):
        loan = self.make_loan(principal='500')
        with self.captureOnCommitCallbacks(execute=True):
            record_repayment(loan_id=loan.pk, amount='200')
        with self.captureOnCommitCallbacks(execute=True):
            record_repayment(loan_id=loan.pk, amount='300')

        titles = list(Notification.objects.filter(user=self.member).order_by('id').values_list('title', flat=True))
        self.assertEqual(titles, ['Loan Repayment Received', 'Loan Fully Repaid'])
        received = Notification.objects.get(title='Loan Repayment Received')
        self.assertIn('£300.00', received.message)

    def test_invalid_repayments_are_rejected(self):
        loan = self.make_loan()
        for amount in ('0', '-1', 'ten'):
            with self.assertRaises(ValidationError):
                record_repayment(loan_id=loan.pk, amount=amount)
        with self.assertRaises(ValidationError):
            record_repayment(loan_id=loan.pk, amount='10', repayment_type='cash_in_hand')
        with self.assertRaises(NotFoundError):
            record_repayment(loan_id=loan.pk + 10, amount='10')
        self.assertFalse(LoanRepayment.objects.exists())

    def test_paid_loan_accepts_no_more_repayments(self):
        loan = self.make_loan(principal='100')
        record_repayment(loan_id=loan.pk, amount='100')
        with self.assertRaises(ValidationError):
            record_repayment(loan_id=loan.pk, amount='5')
        self.assertEqual(LoanRepayment.objects.filter(loan=loan).count(), 1)

    def test_balance_check_and_group_summary(self):
        loan = self.make_loan()
        record_repayment(loan_id=loan.pk, amount='250', repayment_type=LoanRepayment.TYPE_BANK_TRANSFER)
        loan.refresh_from_db()

        check = loan_balance_check(loan)
        self.assertTrue(check['is_consistent'])
        self.assertEqual(check['total_repaid'], Decimal('250.00'))

        paid = self.make_loan(principal='50')
        record_repayment(loan_id=paid.pk, amount='50')
        summary = group_loan_summary(self.group)
        self.assertEqual(summary['total_outstanding'], Decimal('750.00'))
        self.assertEqual(summary['total_principal'], Decimal('1050.00'))
        self.assertEqual(summary['active_loans'], 1)
        self.assertEqual(summary['paid_loans'], 1)


class ConcurrentRepaymentTests(LoanFixtureMixin, TestCase):
    """A repayment that read a balance another writer has since changed."""

    def setUp(self):
        super().setUp()
        self.loan = self.make_loan(principal='500')
        self.stale = Loan.objects.get(pk=self.loan.pk)
        record_repayment(loan_id=self.loan.pk, amount='300')

    def test_stale_read_is_retried_against_current_balance(self):
        real_lock = loan_services._lock_loan
        calls = []

        def lock(loan_id):
            calls.append(loan_id)
            if len(calls) == 1:
                return self.stale
            return real_lock(loan_id)

        with patch('apps.core.loans.services._lock_loan', side_effect=lock):
            result = record_repayment(loan_id=self.loan.pk, amount='300')

        self.assertEqual(len(calls), 2)
        self.assertEqual(result['loan'].outstanding_balance, Decimal('0.00'))
        self.assertEqual(result['loan'].status, Loan.STATUS_PAID)
        self.assertEqual(LoanRepayment.objects.filter(loan=self.loan).count(), 2)

    @override_settings(LEDGER_CONFLICT_RETRIES=0)
    def test_conflict_surfaces_when_retries_are_exhausted(self):
        with patch('apps.core.loans.services._lock_loan', return_value=self.stale):
            with self.assertRaises(ConcurrencyConflictError):
                record_repayment(loan_id=self.loan.pk, amount='300')

        self.loan.refresh_from_db()
        self.assertEqual(self.loan.outstanding_balance, Decimal('200.00'))
        self.assertEqual(LoanRepayment.objects.filter(loan=self.loan).count(), 1)


class LoanDeletionTests(LoanFixtureMixin, TestCase):
    def test_delete_loan_removes_repayment_history(self):
        loan = self.make_loan()
        record_repayment(loan_id=loan.pk, amount='100')
        record_repayment(loan_id=loan.pk, amount='200')

        with self.captureOnCommitCallbacks(execute=True):
            result = delete_loan(loan_id=loan.pk, deleted_by=self.admin)

        self.assertEqual(result, {'loan_id': loan.pk, 'repayments_deleted': 2})
        self.assertFalse(Loan.objects.filter(pk=loan.pk).exists())
        self.assertFalse(LoanRepayment.objects.exists())
        self.assertTrue(Notification.objects.filter(user=self.member, title='Loan Removed').exists())

    def test_single_repayment_cannot_be_deleted(self):
        loan = self.make_loan()
        repayment = record_repayment(loan_id=loan.pk, amount='100')['repayment']
        with self.assertRaises(ValidationError):
            repayment.delete()
        self.assertTrue(LoanRepayment.objects.filter(pk=repayment.pk).exists())

    def test_delete_missing_loan(self):
        with self.assertRaises(NotFoundError):
            delete_loan(loan_id=404)


class LoanViewTests(LoanFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.login(username='admin1', password='pass12345')

    def test_issue_repay_and_inspect(self):
        response = self.client.post(reverse('loan_issue'), {
            'member_id': self.member.pk,
            'group_id': self.group.pk,
            'principal': '1000',
        })
        self.assertEqual(response.status_code, 201)
        loan_id = response.json()['loan']['id']
        self.assertIsNone(response.json()['loan']['monthly_repayment'])

        response = self.client.post(reverse('loan_repayment_create', args=[loan_id]), {
            'amount': '400',
            'repayment_type': 'manual',
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['loan']['outstanding_balance'], '600.00')

        response = self.client.get(reverse('loan_detail', args=[loan_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['total_repaid'], '400.00')
        self.assertTrue(response.json()['is_consistent'])
        self.assertEqual(len(response.json()['repayments']), 1)

    def test_delete_view_requires_confirmation(self):
        loan = self.make_loan()
        response = self.client.post(reverse('loan_delete', args=[loan.pk]), {'confirm': 'no'})
        self.assertEqual(response.status_code, 400)

        response = self.client.post(reverse('loan_delete', args=[loan.pk]), {'confirm': 'yes'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['deleted_loan_id'], loan.pk)

    def test_error_mapping(self):
        response = self.client.post(reverse('loan_repayment_create', args=[999]), {
            'amount': '10',
            'repayment_type': 'manual',
        })
        self.assertEqual(response.status_code, 404)

        loan = self.make_loan(principal='10')
        record_repayment(loan_id=loan.pk, amount='10')
        response = self.client.post(reverse('loan_repayment_create', args=[loan.pk]), {
            'amount': '10',
            'repayment_type': 'manual',
        })
        self.assertEqual(response.status_code, 400)

        response = self.client.get(reverse('loan_issue'))
        self.assertEqual(response.status_code, 405)


@skipUnlessDBFeature('has_select_for_update')
class ParallelRepaymentTests(LoanFixtureMixin, TransactionTestCase):
    """Two writers repaying the same loan at once, each on its own connection."""

    def test_parallel_repayments_serialize_on_the_loan_row(self):
        loan = self.make_loan(principal='500')
        barrier = threading.Barrier(2)
        errors = []

        def repay():
            try:
                barrier.wait(timeout=5)
                record_repayment(loan_id=loan.pk, amount='300')
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        workers = [threading.Thread(target=repay) for _ in range(2)]
        for worker in workers:
            worker.start()
        for worker in workers:
            worker.join(timeout=30)

        self.assertEqual(errors, [])
        loan.refresh_from_db()
        self.assertEqual(loan.outstanding_balance, Decimal('0.00'))
        self.assertEqual(loan.status, Loan.STATUS_PAID)
        self.assertEqual(
            sorted(LoanRepayment.objects.filter(loan=loan).values_list('balance_after', flat=True)),
            [Decimal('0.00'), Decimal('200.00')],
        )


class MigrationStateTests(TestCase):
    def test_models_match_migrations(self):
        out = StringIO()
        call_command('makemigrations', '--check', '--dry-run', stdout=out)
        self.assertIn('No changes detected', out.getvalue())
