from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.db import DatabaseError
from django.http import JsonResponse
from django.test import RequestFactory, TestCase
from django.urls import reverse

from apps.core.groups.models import ContributionGroup
from apps.core.users.audit import log_audit_event
from apps.core.users.decorators import role_required
from apps.core.users.models import AuditLog


class UserModelTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()

    def test_new_users_default_to_contributor(self):
        user = self.user_model.objects.create_user(username='member1', password='pass12345')
        self.assertEqual(user.role, 'contributor')
        self.assertFalse(user.is_ledger_admin)

    def test_superuser_is_always_admin(self):
        user = self.user_model.objects.create_superuser('root', 'root@example.com', 'pass12345')
        self.assertEqual(user.role, 'admin')

        user.role = 'contributor'
        user.save()
        user.refresh_from_db()
        self.assertEqual(user.role, 'admin')

    def test_ledger_admins_can_use_admin_site_login(self):
        admin = self.user_model.objects.create_user(username='admin9', password='pass12345', role='admin')
        self.assertTrue(admin.is_ledger_admin)
        self.assertTrue(admin.is_staff)

    def test_display_name_prefers_full_name(self):
        user = self.user_model.objects.create_user(
            username='member2',
            password='pass12345',
            full_name='Ada Obi',
            first_name='Ada',
        )
        self.assertEqual(user.display_name, 'Ada Obi')

        bare = self.user_model.objects.create_user(username='member3', password='pass12345')
        self.assertEqual(bare.display_name, 'member3')


class AuditLogTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )

    def test_log_audit_event_records_actor_and_target(self):
        group = ContributionGroup.objects.create(name='Circle', contribution_amount=Decimal('50.00'))
        entry = log_audit_event(action='groups.test', actor=self.admin, target=group, details='hello')

        self.assertIsNotNone(entry)
        self.assertEqual(entry.user, self.admin)
        self.assertEqual(entry.target_model, 'ContributionGroup')
        self.assertEqual(entry.target_id, str(group.pk))
        self.assertEqual(entry.method, '')

    def test_anonymous_actor_is_stored_as_system(self):
        entry = log_audit_event(action='system.job', actor=None)
        self.assertIsNone(entry.user)

    def test_audit_failure_is_logged_not_raised(self):
        with patch.object(AuditLog.objects, 'create', side_effect=DatabaseError('disk full')):
            with self.assertLogs('apps.core.users.audit', level='WARNING'):
                entry = log_audit_event(action='groups.test', actor=self.admin)
        self.assertIsNone(entry)

    def test_login_and_logout_are_audited(self):
        self.client.login(username='admin1', password='pass12345')
        self.client.logout()
        actions = list(AuditLog.objects.filter(user=self.admin).values_list('action', flat=True))
        self.assertEqual(sorted(actions), ['user.login', 'user.logout'])

    def test_failed_login_records_username_without_actor(self):
        self.assertFalse(self.client.login(username='admin1', password='wrong'))
        entry = AuditLog.objects.get(action='user.login_failed')
        self.assertIsNone(entry.user)
        self.assertEqual(entry.details, 'Username=admin1')


class RoleAccessTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.admin = self.user_model.objects.create_user(
            username='admin1',
            password='pass12345',
            role='admin',
        )
        self.contributor = self.user_model.objects.create_user(
            username='contributor1',
            password='pass12345',
            role='contributor',
        )

    def test_anonymous_user_is_redirected_to_login(self):
        response = self.client.post(reverse('period_create'), {})
        self.assertEqual(response.status_code, 302)

    def test_contributor_cannot_use_admin_actions(self):
        self.client.login(username='contributor1', password='pass12345')
        response = self.client.post(reverse('loan_issue'), {})
        self.assertEqual(response.status_code, 403)

    def test_admin_reaches_form_validation(self):
        self.client.login(username='admin1', password='pass12345')
        response = self.client.post(reverse('loan_issue'), {})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'validation')

    def test_forbidden_response_names_required_roles(self):
        self.client.login(username='contributor1', password='pass12345')
        response = self.client.post(reverse('period_create'), {})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['required_roles'], ['admin'])

    def test_role_required_accepts_several_roles(self):
        @role_required('admin', 'contributor')
        def view(request):
            return JsonResponse({'ok': True})

        request = RequestFactory().get('/')
        request.user = self.contributor
        self.assertEqual(view(request).status_code, 200)

        request.user = AnonymousUser()
        self.assertEqual(view(request).status_code, 401)
