from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse

from apps.core.contributions.models import ContributionPayment
from apps.core.contributions.services import create_period, finalize_period, record_payment
from apps.core.dashboard.services import group_dashboard, member_statement
from apps.core.groups.models import ContributionGroup, GroupMembership
from apps.core.loans.services import issue_loan, record_repayment


class DashboardFixtureMixin:
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.group = ContributionGroup.objects.create(name='Sunday Circle', contribution_amount=Decimal('500.00'))
        self.ama = self.user_model.objects.create_user(username='ama', password='pass12345', full_name='Ama Mensah')
        self.bayo = self.user_model.objects.create_user(username='bayo', password='pass12345')
        for member in (self.ama, self.bayo):
            GroupMembership.objects.create(group=self.group, user=member)

        self.period = create_period(
            group_id=self.group.pk,
            month=1,
            year=2026,
            beneficiary_id=self.bayo.pk,
            created_by=self.admin,
        )
        record_payment(period_id=self.period.pk, member_id=self.ama.pk, amount='500', recorded_by=self.admin)
        record_payment(
            period_id=self.period.pk,
            member_id=self.ama.pk,
            amount='200',
            status=ContributionPayment.STATUS_PENDING,
            recorded_by=self.admin,
        )
        self.loan = issue_loan(
            member_id=self.ama.pk,
            group_id=self.group.pk,
            principal='1000',
            monthly_repayment='100',
            issued_by=self.admin,
        )
        record_repayment(loan_id=self.loan.pk, amount='300', recorded_by=self.admin)


class MemberStatementTests(DashboardFixtureMixin, TestCase):
    def test_statement_totals_only_count_paid_contributions_and_active_loans(self):
        statement = member_statement(self.ama)

        self.assertEqual(statement['total_contributed'], Decimal('500.00'))
        self.assertEqual(statement['loan_balance'], Decimal('700.00'))
        self.assertEqual(statement['monthly_repayment_due'], Decimal('100.00'))
        self.assertEqual(statement['expected_contribution'], Decimal('500.00'))
        self.assertEqual(len(statement['payments']), 2)
        self.assertEqual([loan.pk for loan in statement['loans']], [self.loan.pk])
        self.assertIsNone(statement['upcoming_payout'])

    def test_beneficiary_sees_upcoming_payout_until_finalized(self):
        self.assertEqual(member_statement(self.bayo)['upcoming_payout'], self.period)

        finalize_period(period_id=self.period.pk, finalized_by=self.admin)
        self.assertIsNone(member_statement(self.bayo)['upcoming_payout'])

    def test_member_without_membership_expects_nothing(self):
        outsider = self.user_model.objects.create_user(username='dayo', password='pass12345')
        statement = member_statement(outsider)
        self.assertEqual(statement['expected_contribution'], Decimal('0.00'))
        self.assertEqual(statement['payments'], [])


class GroupDashboardTests(DashboardFixtureMixin, TestCase):
    def test_dashboard_combines_period_and_loan_summaries(self):
        dashboard = group_dashboard(self.group, month=1, year=2026)

        self.assertEqual(dashboard['active_members'], 2)
        self.assertEqual(dashboard['period']['total_collected'], Decimal('500.00'))
        self.assertEqual(dashboard['period']['outstanding'], Decimal('500.00'))
        self.assertEqual(dashboard['loans']['total_outstanding'], Decimal('700.00'))
        self.assertEqual(dashboard['active_loans'], [self.loan])
        self.assertEqual(len(dashboard['recent_payments']), 2)

    def test_missing_period_is_reported_as_none(self):
        dashboard = group_dashboard(self.group, month=2, year=2026)
        self.assertIsNone(dashboard['period'])
        self.assertEqual(dashboard['loans']['active_loans'], 1)


class DashboardViewTests(DashboardFixtureMixin, TestCase):
    def test_contributor_dashboard_lists_own_history(self):
        self.client.login(username='ama', password='pass12345')
        response = self.client.get(reverse('contributor_dashboard'))

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['name'], 'Ama Mensah')
        self.assertEqual(payload['total_contributed'], '500.00')
        self.assertEqual(payload['loan_balance'], '700.00')
        self.assertEqual({row['period_label'] for row in payload['payments']}, {'January 2026'})
        self.assertEqual(payload['loans'][0]['group_name'], 'Sunday Circle')
        self.assertEqual(
            [row['balance_after'] for row in payload['loans'][0]['repayments']],
            ['700.00'],
        )

    def test_contributor_dashboard_hides_other_members(self):
        self.client.login(username='bayo', password='pass12345')
        payload = self.client.get(reverse('contributor_dashboard')).json()

        self.assertEqual(payload['payments'], [])
        self.assertEqual(payload['loans'], [])
        self.assertEqual(payload['upcoming_payout']['label'], 'January 2026')

    def test_contributor_dashboard_requires_login(self):
        response = self.client.get(reverse('contributor_dashboard'))
        self.assertEqual(response.status_code, 302)

    def test_group_summary_for_admin(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.get(reverse('group_summary', args=[self.group.pk]), {'month': 1, 'year': 2026})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['active_members'], 2)
        self.assertEqual(payload['period']['total_collected'], '500.00')
        self.assertEqual(payload['period']['outstanding'], '500.00')
        self.assertEqual(payload['period']['unpaid_members'], [{'member_id': self.bayo.pk, 'name': 'bayo'}])
        self.assertEqual(payload['loans']['total_outstanding'], '700.00')
        self.assertEqual(payload['active_loans'][0]['member_name'], 'Ama Mensah')
        self.assertEqual(len(payload['recent_payments']), 2)

    def test_group_summary_validates_month(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.get(reverse('group_summary', args=[self.group.pk]), {'month': 13})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'validation')

    def test_group_summary_unknown_group(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.get(reverse('group_summary', args=[9999]))
        self.assertEqual(response.status_code, 404)

    def test_group_summary_is_admin_only(self):
        self.client.login(username='ama', password='pass12345')
        response = self.client.get(reverse('group_summary', args=[self.group.pk]))
        self.assertEqual(response.status_code, 403)
