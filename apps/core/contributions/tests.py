from decimal import Decimal
from io import StringIO
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.urls import reverse

from apps.core.contributions.models import ContributionPayment, MonthlyContribution, PaymentEvent
from apps.core.contributions.services import (
    PeriodLockGuard,
    create_period,
    delete_payment,
    edit_payment,
    finalize_period,
    period_summary,
    recalculate_expected_total,
    recompute_collected,
    recompute_group_totals,
    record_payment,
    update_payment_status,
    update_period_details,
)
from apps.core.groups.models import ContributionGroup, GroupMembership
from apps.core.notifications.models import Notification
from apps.core.users.models import AuditLog
from apps.core.utils.errors import NotFoundError, NotificationDeliveryError, PeriodLockedError


class ContributionFixtureMixin:
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.group = ContributionGroup.objects.create(name='Sunday Circle', contribution_amount=Decimal('500.00'))
        self.members = []
        for username in ('ama', 'bayo', 'chika'):
            member = self.user_model.objects.create_user(username=username, password='pass12345')
            GroupMembership.objects.create(group=self.group, user=member)
            self.members.append(member)
        self.ama, self.bayo, self.chika = self.members

    def make_period(self, **kwargs):
        params = {
            'group_id': self.group.pk,
            'month': 1,
            'year': 2026,
            'created_by': self.admin,
        }
        params.update(kwargs)
        return create_period(**params)

    def collected(self, period):
        period.refresh_from_db()
        return period.total_collected


class PeriodCreationTests(ContributionFixtureMixin, TestCase):
    def test_expected_total_is_snapshot_of_active_members(self):
        period = self.make_period()
        self.assertEqual(period.per_member_amount, Decimal('500.00'))
        self.assertEqual(period.total_expected, Decimal('1500.00'))
        self.assertEqual(period.total_collected, Decimal('0.00'))
        self.assertEqual(period.label, 'January 2026')

    def test_later_membership_changes_do_not_move_expected_total(self):
        period = self.make_period()
        newcomer = self.user_model.objects.create_user(username='dayo', password='pass12345')
        GroupMembership.objects.create(group=self.group, user=newcomer)

        period.refresh_from_db()
        self.assertEqual(period.total_expected, Decimal('1500.00'))

        result = recalculate_expected_total(period_id=period.pk, actor=self.admin)
        self.assertEqual(result['previous_total_expected'], Decimal('1500.00'))
        self.assertEqual(result['period'].total_expected, Decimal('2000.00'))
        self.assertTrue(AuditLog.objects.filter(action='contributions.expected_recalculated').exists())

    def test_per_member_amount_can_override_group_default(self):
        period = self.make_period(per_member_amount='120.50')
        self.assertEqual(period.total_expected, Decimal('361.50'))

    def test_duplicate_period_is_rejected(self):
        self.make_period()
        with self.assertRaises(ValidationError):
            self.make_period()
        self.assertEqual(MonthlyContribution.objects.count(), 1)

    def test_invalid_month_and_sort_code_are_rejected(self):
        with self.assertRaises(ValidationError):
            self.make_period(month=13)
        with self.assertRaises(ValidationError):
            self.make_period(beneficiary_sort_code='12-34-56')
        with self.assertRaises(NotFoundError):
            self.make_period(group_id=self.group.pk + 50)

    def test_members_are_told_about_new_period(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.make_period(beneficiary_id=self.ama.pk)
        notifications = Notification.objects.filter(type=Notification.TYPE_PERIOD)
        self.assertEqual(notifications.count(), 3)
        self.assertIn('January 2026', notifications.first().title)

    def test_update_period_details_changes_beneficiary(self):
        period = self.make_period()
        period = update_period_details(
            period_id=period.pk,
            beneficiary_id=self.bayo.pk,
            beneficiary_bank_name=' First Bank ',
            beneficiary_sort_code='123456',
            updated_by=self.admin,
        )
        period.refresh_from_db()
        self.assertEqual(period.beneficiary, self.bayo)
        self.assertEqual(period.beneficiary_bank_name, 'First Bank')
        self.assertEqual(period.beneficiary_sort_code, '123456')


class PaymentEngineTests(ContributionFixtureMixin, TestCase):
    def test_only_paid_payments_count_toward_collected(self):
        period = self.make_period()
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500', status='paid')
        record_payment(period_id=period.pk, member_id=self.bayo.pk, amount='500', status='paid')
        result = record_payment(period_id=period.pk, member_id=self.chika.pk, amount='250', status='partial')

        self.assertEqual(result['period'].total_collected, Decimal('1000.00'))
        self.assertEqual(self.collected(period), Decimal('1000.00'))

    def test_pending_to_paid_adds_exact_amount_and_notifies(self):
        period = self.make_period()
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')
        pending = record_payment(
            period_id=period.pk,
            member_id=self.bayo.pk,
            amount='300',
            status='pending',
        )['payment']
        before = self.collected(period)

        with self.captureOnCommitCallbacks(execute=True):
            result = update_payment_status(payment_id=pending.pk, status='paid', updated_by=self.admin)

        self.assertEqual(result['period'].total_collected - before, Decimal('300.00'))
        self.assertTrue(
            Notification.objects.filter(user=self.bayo, title='Payment Confirmed').exists()
        )

    def test_deleting_paid_payment_reduces_collected_and_notifies(self):
        period = self.make_period()
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')
        record_payment(period_id=period.pk, member_id=self.bayo.pk, amount='300')
        doomed = record_payment(period_id=period.pk, member_id=self.chika.pk, amount='200')['payment']
        self.assertEqual(self.collected(period), Decimal('1000.00'))

        with self.captureOnCommitCallbacks(execute=True):
            result = delete_payment(payment_id=doomed.pk, deleted_by=self.admin)

        self.assertEqual(result['period'].total_collected, Decimal('800.00'))
        self.assertFalse(ContributionPayment.objects.filter(pk=doomed.pk).exists())
        removed = Notification.objects.get(user=self.chika, title='Payment Removed')
        self.assertIn('£200.00', removed.message)

    def test_paid_to_pending_withdraws_amount(self):
        period = self.make_period()
        payment = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')['payment']

        with self.captureOnCommitCallbacks(execute=True):
            result = update_payment_status(payment_id=payment.pk, status='pending')

        self.assertEqual(result['period'].total_collected, Decimal('0.00'))
        self.assertTrue(
            Notification.objects.filter(user=self.ama, title='Payment Status Updated').exists()
        )

    def test_status_change_between_unpaid_states_is_silent(self):
        period = self.make_period()
        payment = record_payment(
            period_id=period.pk,
            member_id=self.ama.pk,
            amount='500',
            status='pending',
        )['payment']

        with self.captureOnCommitCallbacks(execute=True):
            update_payment_status(payment_id=payment.pk, status='overdue')

        self.assertFalse(Notification.objects.filter(user=self.ama).exists())

    def test_member_may_have_several_payment_rows(self):
        period = self.make_period()
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='200')
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='300')

        summary = period_summary(period)
        self.assertEqual(self.collected(period), Decimal('500.00'))
        self.assertEqual(summary['members'][0]['paid_total'], Decimal('500.00'))
        self.assertEqual(summary['members'][0]['payments'], 2)
        self.assertEqual(
            {row['member_id'] for row in summary['unpaid_members']},
            {self.bayo.pk, self.chika.pk},
        )
        self.assertEqual(summary['outstanding'], Decimal('1000.00'))

    def test_edit_payment_moves_amount_between_members(self):
        period = self.make_period()
        payment = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')['payment']

        with self.captureOnCommitCallbacks(execute=True):
            result = edit_payment(
                payment_id=payment.pk,
                member_id=self.bayo.pk,
                amount='450',
                status='paid',
                updated_by=self.admin,
            )

        self.assertEqual(result['payment'].member, self.bayo)
        self.assertEqual(result['period'].total_collected, Decimal('450.00'))
        self.assertTrue(Notification.objects.filter(user=self.bayo, title='Payment Updated').exists())
        self.assertTrue(Notification.objects.filter(user=self.ama, title='Payment Reassigned').exists())

    def test_invalid_input_is_rejected(self):
        period = self.make_period()
        for amount in ('0', '-5', 'abc', None, '10000000000', '9999999999.995'):
            with self.assertRaises(ValidationError):
                record_payment(period_id=period.pk, member_id=self.ama.pk, amount=amount)
        with self.assertRaises(ValidationError):
            record_payment(period_id=period.pk, member_id=self.ama.pk, amount='10', status='settled')
        with self.assertRaises(NotFoundError):
            record_payment(period_id=period.pk + 99, member_id=self.ama.pk, amount='10')
        with self.assertRaises(NotFoundError):
            record_payment(period_id=period.pk, member_id=self.ama.pk + 99, amount='10')
        with self.assertRaises(NotFoundError):
            update_payment_status(payment_id=12345, status='paid')
        self.assertFalse(ContributionPayment.objects.exists())

    def test_notification_failure_keeps_payment(self):
        period = self.make_period()
        with patch(
            'apps.core.notifications.services._create_notification',
            side_effect=NotificationDeliveryError('sink down'),
        ):
            with self.assertLogs('apps.core.notifications.services', level='WARNING'):
                with self.captureOnCommitCallbacks(execute=True):
                    result = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')

        self.assertTrue(ContributionPayment.objects.filter(pk=result['payment'].pk).exists())
        self.assertEqual(self.collected(period), Decimal('500.00'))
        self.assertFalse(Notification.objects.exists())


class AggregateRecomputeTests(ContributionFixtureMixin, TestCase):
    def test_recompute_repairs_stale_total_and_is_idempotent(self):
        period = self.make_period()
        record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')
        record_payment(period_id=period.pk, member_id=self.bayo.pk, amount='250', status='partial')
        MonthlyContribution.objects.filter(pk=period.pk).update(total_collected=Decimal('9999.00'))

        first = recompute_collected(period.pk).total_collected
        second = recompute_collected(period.pk).total_collected
        self.assertEqual(first, Decimal('500.00'))
        self.assertEqual(first, second)

    def test_recompute_group_totals_walks_every_period(self):
        january = self.make_period()
        february = self.make_period(month=2)
        record_payment(period_id=february.pk, member_id=self.ama.pk, amount='500')
        MonthlyContribution.objects.update(total_collected=Decimal('1.00'))

        self.assertEqual(recompute_group_totals(group=self.group), 2)
        self.assertEqual(self.collected(january), Decimal('0.00'))
        self.assertEqual(self.collected(february), Decimal('500.00'))

    def test_recompute_totals_command(self):
        period = self.make_period()
        MonthlyContribution.objects.filter(pk=period.pk).update(total_collected=Decimal('42.00'))
        out = StringIO()
        call_command('recompute_totals', '--group', str(self.group.pk), stdout=out)
        self.assertIn('1 period(s)', out.getvalue())
        self.assertEqual(self.collected(period), Decimal('0.00'))

        with self.assertRaises(CommandError):
            call_command('recompute_totals', '--group', str(self.group.pk + 40), stdout=StringIO())

    def test_recalculate_expected_command(self):
        period = self.make_period()
        GroupMembership.objects.filter(user=self.chika).update(is_active=False)
        out = StringIO()
        call_command('recalculate_expected', '--all-open', stdout=out)
        period.refresh_from_db()
        self.assertEqual(period.total_expected, Decimal('1000.00'))
        self.assertIn('1 of 1', out.getvalue())


class PeriodLockTests(ContributionFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.period = self.make_period(beneficiary_id=self.chika.pk)
        self.payment = record_payment(period_id=self.period.pk, member_id=self.ama.pk, amount='500')['payment']
        with self.captureOnCommitCallbacks(execute=True):
            self.period = finalize_period(period_id=self.period.pk, finalized_by=self.admin)

    def test_finalize_locks_and_notifies_beneficiary(self):
        self.assertTrue(self.period.is_finalized)
        self.assertEqual(self.period.finalized_by, self.admin)
        self.assertTrue(PeriodLockGuard.is_locked(self.period))
        self.assertTrue(Notification.objects.filter(user=self.chika, title__startswith='Payout Finalized').exists())

    def test_finalized_period_rejects_payment_mutations(self):
        with self.assertRaises(PeriodLockedError):
            record_payment(period_id=self.period.pk, member_id=self.bayo.pk, amount='500')
        with self.assertRaises(PeriodLockedError):
            update_payment_status(payment_id=self.payment.pk, status='pending')
        with self.assertRaises(PeriodLockedError):
            edit_payment(payment_id=self.payment.pk, member_id=self.ama.pk, amount='10', status='paid')
        with self.assertRaises(PeriodLockedError):
            delete_payment(payment_id=self.payment.pk)
        with self.assertRaises(PeriodLockedError):
            finalize_period(period_id=self.period.pk)
        with self.assertRaises(PeriodLockedError):
            recalculate_expected_total(period_id=self.period.pk)

        self.assertEqual(ContributionPayment.objects.count(), 1)
        self.assertEqual(self.collected(self.period), Decimal('500.00'))

    def test_recompute_still_runs_on_finalized_period(self):
        MonthlyContribution.objects.filter(pk=self.period.pk).update(total_collected=Decimal('0.00'))
        self.assertEqual(recompute_collected(self.period.pk).total_collected, Decimal('500.00'))


class PaymentEventLogTests(ContributionFixtureMixin, TestCase):
    def test_every_mutation_appends_an_event(self):
        period = self.make_period()
        payment = record_payment(
            period_id=period.pk,
            member_id=self.ama.pk,
            amount='300',
            status='pending',
            recorded_by=self.admin,
        )['payment']
        update_payment_status(payment_id=payment.pk, status='paid', updated_by=self.admin)
        delete_payment(payment_id=payment.pk, deleted_by=self.admin)

        events = list(PaymentEvent.objects.filter(period=period))
        self.assertEqual([event.event_type for event in events], ['created', 'updated', 'deleted'])
        self.assertEqual([event.paid_delta for event in events], [Decimal('0.00'), Decimal('300.00'), Decimal('-300.00')])
        self.assertEqual(events[1].previous_status, 'pending')
        self.assertTrue(all(event.payment_id_snapshot == payment.pk for event in events))
        self.assertEqual(events[0].actor, self.admin)

    def test_events_cannot_be_changed_or_deleted(self):
        period = self.make_period()
        event = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='100')['event']

        event.amount = Decimal('1.00')
        with self.assertRaises(ValidationError):
            event.save()
        with self.assertRaises(ValidationError):
            event.delete()
        self.assertEqual(PaymentEvent.objects.get(pk=event.pk).amount, Decimal('100.00'))


class ContributionViewTests(ContributionFixtureMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.client.login(username='admin1', password='pass12345')

    def test_create_period_and_record_payment(self):
        response = self.client.post(reverse('period_create'), {
            'group_id': self.group.pk,
            'month': 3,
            'year': 2026,
        })
        self.assertEqual(response.status_code, 201)
        period_id = response.json()['period']['id']
        self.assertEqual(response.json()['period']['total_expected'], '1500.00')

        response = self.client.post(reverse('payment_record'), {
            'period_id': period_id,
            'member_id': self.ama.pk,
            'amount': '500.00',
            'status': 'paid',
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['period']['total_collected'], '500.00')

        response = self.client.get(reverse('period_detail', args=[period_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['outstanding'], '1000.00')

    def test_error_mapping(self):
        period = self.make_period()
        response = self.client.post(reverse('payment_record'), {
            'period_id': period.pk,
            'member_id': self.ama.pk,
            'amount': '-1',
            'status': 'paid',
        })
        self.assertEqual(response.status_code, 400)

        response = self.client.post(reverse('payment_update_status', args=[9999]), {'status': 'paid'})
        self.assertEqual(response.status_code, 404)

        self.client.post(reverse('period_finalize', args=[period.pk]))
        response = self.client.post(reverse('payment_record'), {
            'period_id': period.pk,
            'member_id': self.ama.pk,
            'amount': '10',
            'status': 'paid',
        })
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'period_locked')

    def test_delete_requires_confirmation(self):
        period = self.make_period()
        payment = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')['payment']

        response = self.client.post(reverse('payment_delete', args=[payment.pk]), {})
        self.assertEqual(response.status_code, 400)
        self.assertTrue(ContributionPayment.objects.filter(pk=payment.pk).exists())

        response = self.client.post(reverse('payment_delete', args=[payment.pk]), {'confirm': 'yes'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['period']['total_collected'], '0.00')

    def test_edit_and_recompute_views(self):
        period = self.make_period()
        payment = record_payment(period_id=period.pk, member_id=self.ama.pk, amount='500')['payment']

        response = self.client.post(reverse('payment_edit', args=[payment.pk]), {
            'member_id': self.bayo.pk,
            'amount': '400',
            'status': 'paid',
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['payment']['member_id'], self.bayo.pk)

        MonthlyContribution.objects.filter(pk=period.pk).update(total_collected=Decimal('0.00'))
        response = self.client.post(reverse('period_recompute', args=[period.pk]))
        self.assertEqual(response.json()['period']['total_collected'], '400.00')

    def test_update_details_touches_only_submitted_fields(self):
        period = self.make_period(beneficiary_id=self.ama.pk, beneficiary_bank_name='Old Bank')

        response = self.client.post(reverse('period_update_details', args=[period.pk]), {
            'beneficiary_account_name': 'Bayo B',
        })
        self.assertEqual(response.status_code, 200)
        period.refresh_from_db()
        self.assertEqual(period.beneficiary, self.ama)
        self.assertEqual(period.beneficiary_bank_name, 'Old Bank')
        self.assertEqual(period.beneficiary_account_name, 'Bayo B')

        response = self.client.post(reverse('period_update_details', args=[period.pk]), {
            'beneficiary_sort_code': '12-34',
        })
        self.assertEqual(response.status_code, 400)

    def test_contributor_is_forbidden(self):
        self.client.logout()
        self.client.login(username='ama', password='pass12345')
        response = self.client.post(reverse('period_create'), {'group_id': self.group.pk, 'month': 3, 'year': 2026})
        self.assertEqual(response.status_code, 403)
