from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import OperationalError, transaction
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse

from apps.core.notifications.models import Notification
from apps.core.notifications.services import (
    deliver_notification,
    mark_all_read,
    mark_notification_read,
    notify,
    notify_many,
    unread_count,
)
from apps.core.utils.errors import NotificationDeliveryError


class NotificationServiceTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.member = self.user_model.objects.create_user(username='member1', password='pass12345')
        self.other = self.user_model.objects.create_user(username='member2', password='pass12345')

    def test_notify_waits_for_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            notify(user_id=self.member.pk, title='Payment Confirmed', message='Thanks')
        self.assertEqual(len(callbacks), 1)
        self.assertFalse(Notification.objects.exists())

        callbacks[0]()
        notification = Notification.objects.get()
        self.assertEqual(notification.user, self.member)
        self.assertEqual(notification.type, Notification.TYPE_PAYMENT)
        self.assertFalse(notification.is_read)
        self.assertEqual(notification.link, reverse('contributor_dashboard'))

    def test_rolled_back_transaction_sends_nothing(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            try:
                with transaction.atomic():
                    notify(user_id=self.member.pk, title='Loan Issued', message='x')
                    raise RuntimeError('abort')
            except RuntimeError:
                pass
        self.assertEqual(callbacks, [])
        self.assertFalse(Notification.objects.exists())

    @override_settings(LEDGER_NOTIFICATION_LINK='/me/')
    def test_link_defaults_from_settings(self):
        notification = deliver_notification(user_id=self.member.pk, title='t', message='m')
        self.assertEqual(notification.link, '/me/')

        explicit = deliver_notification(user_id=self.member.pk, title='t', message='m', link='')
        self.assertEqual(explicit.link, '')

    def test_notify_skips_missing_user(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            notify(user_id=None, title='t', message='m')
        self.assertEqual(callbacks, [])

    def test_notify_many_deduplicates_recipients(self):
        with self.captureOnCommitCallbacks(execute=True):
            notify_many(
                user_ids=[self.member.pk, self.other.pk, self.member.pk],
                title='New Contribution Period',
                message='Open',
            )
        self.assertEqual(Notification.objects.count(), 2)
        self.assertEqual(Notification.objects.first().type, Notification.TYPE_ANNOUNCEMENT)

    def test_delivery_failure_is_logged_and_swallowed(self):
        with patch(
            'apps.core.notifications.services._create_notification',
            side_effect=NotificationDeliveryError('boom'),
        ):
            with self.assertLogs('apps.core.notifications.services', level='WARNING') as logs:
                result = deliver_notification(user_id=self.member.pk, title='Payment Confirmed', message='m')
        self.assertIsNone(result)
        self.assertIn('Payment Confirmed', logs.output[0])

    def test_mark_read_helpers(self):
        first = deliver_notification(user_id=self.member.pk, title='a', message='m')
        deliver_notification(user_id=self.member.pk, title='b', message='m')
        foreign = deliver_notification(user_id=self.other.pk, title='c', message='m')
        self.assertEqual(unread_count(self.member), 2)

        mark_notification_read(notification=foreign, user=self.member)
        foreign.refresh_from_db()
        self.assertFalse(foreign.is_read)

        mark_notification_read(notification=first, user=self.member)
        self.assertEqual(unread_count(self.member), 1)
        self.assertEqual(mark_all_read(self.member), 1)
        self.assertEqual(unread_count(self.member), 0)
        self.assertEqual(unread_count(self.other), 1)


class NotificationViewTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.member = self.user_model.objects.create_user(username='member1', password='pass12345')
        self.other = self.user_model.objects.create_user(username='member2', password='pass12345')
        self.mine = deliver_notification(user_id=self.member.pk, title='Mine', message='m')
        self.read = deliver_notification(user_id=self.member.pk, title='Read', message='m')
        mark_notification_read(notification=self.read, user=self.member)
        self.theirs = deliver_notification(user_id=self.other.pk, title='Theirs', message='m')

    def test_list_shows_only_own_notifications(self):
        self.client.login(username='member1', password='pass12345')
        response = self.client.get(reverse('notification_list'))
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload['unread_count'], 1)
        self.assertEqual({row['title'] for row in payload['notifications']}, {'Mine', 'Read'})

        response = self.client.get(reverse('notification_list'), {'unread': '1'})
        self.assertEqual([row['title'] for row in response.json()['notifications']], ['Mine'])

    def test_mark_read_is_scoped_to_owner(self):
        self.client.login(username='member1', password='pass12345')
        response = self.client.post(reverse('notification_mark_read', args=[self.theirs.pk]))
        self.assertEqual(response.status_code, 404)

        response = self.client.post(reverse('notification_mark_read', args=[self.mine.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['notification']['is_read'])

    def test_mark_all_read(self):
        self.client.login(username='member1', password='pass12345')
        response = self.client.post(reverse('notification_mark_all_read'))
        self.assertEqual(response.json(), {'updated': 1})
        self.theirs.refresh_from_db()
        self.assertFalse(self.theirs.is_read)


class NotificationCommitFailureTests(TransactionTestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.member = self.user_model.objects.create_user(username='member1', password='pass12345')

    def test_missing_user_fails_at_commit_and_is_swallowed(self):
        with self.assertLogs('apps.core.notifications.services', level='WARNING') as logs:
            result = deliver_notification(user_id=987654, title='Payment Confirmed', message='m')
        self.assertIsNone(result)
        self.assertIn('987654', logs.output[0])
        self.assertFalse(Notification.objects.exists())

    def test_storage_error_after_commit_does_not_fail_the_mutation(self):
        with patch(
            'apps.core.notifications.services._create_notification',
            side_effect=OperationalError('database is locked'),
        ):
            with self.assertLogs('apps.core.notifications.services', level='WARNING'):
                with transaction.atomic():
                    notify(user_id=self.member.pk, title='Loan Issued', message='m')
                    Notification.objects.create(user=self.member, title='committed', message='m')

        self.assertEqual(list(Notification.objects.values_list('title', flat=True)), ['committed'])
