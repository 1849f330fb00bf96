from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError
from django.test import TestCase

from apps.core.groups.models import ContributionGroup, GroupMembership
from apps.core.groups.services import (
    active_member_count,
    active_members,
    get_group,
    get_member,
)
from apps.core.utils.errors import NotFoundError


class GroupMembershipTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.group = ContributionGroup.objects.create(name='Friday Circle', contribution_amount=Decimal('100.00'))
        self.alice = self.user_model.objects.create_user(username='alice', password='pass12345', full_name='Alice A')
        self.bola = self.user_model.objects.create_user(username='bola', password='pass12345')
        self.chidi = self.user_model.objects.create_user(username='chidi', password='pass12345')

        GroupMembership.objects.create(group=self.group, user=self.alice)
        GroupMembership.objects.create(group=self.group, user=self.bola)
        GroupMembership.objects.create(group=self.group, user=self.chidi, is_active=False)

    def test_only_active_memberships_count(self):
        self.assertEqual(active_member_count(self.group), 2)
        self.assertEqual({user.username for user in active_members(self.group)}, {'alice', 'bola'})

    def test_deactivated_user_drops_out_of_active_members(self):
        self.bola.is_active = False
        self.bola.save(update_fields=['is_active'])
        self.assertEqual(active_member_count(self.group), 1)

    def test_membership_is_unique_per_group(self):
        with self.assertRaises(IntegrityError):
            GroupMembership.objects.create(group=self.group, user=self.alice)

    def test_for_group_scopes_memberships(self):
        other = ContributionGroup.objects.create(name='Other Circle', contribution_amount=Decimal('20.00'))
        GroupMembership.objects.create(group=other, user=self.alice)
        self.assertEqual(GroupMembership.objects.for_group(other).count(), 1)
        self.assertEqual(GroupMembership.objects.for_group(self.group).count(), 3)

    def test_active_members_use_display_names(self):
        names = {user.display_name for user in active_members(self.group)}
        self.assertEqual(names, {'Alice A', 'bola'})


class GroupLookupTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.group = ContributionGroup.objects.create(name='Lookup Circle', contribution_amount=Decimal('10.00'))

    def test_get_group_raises_not_found(self):
        self.assertEqual(get_group(self.group.pk), self.group)
        with self.assertRaises(NotFoundError):
            get_group(self.group.pk + 100)

    def test_get_member_rejects_inactive_or_missing_users(self):
        inactive = self.user_model.objects.create_user(username='gone', password='pass12345', is_active=False)
        with self.assertRaises(NotFoundError):
            get_member(inactive.pk)
        with self.assertRaises(NotFoundError):
            get_member(None)
        with self.assertRaises(NotFoundError):
            get_member('abc')

    def test_group_clean_requires_positive_amount(self):
        group = ContributionGroup(name='  ', contribution_amount=Decimal('10.00'))
        with self.assertRaises(ValidationError):
            group.clean()

        group = ContributionGroup(name='Zero Circle', contribution_amount=Decimal('0.00'))
        with self.assertRaises(ValidationError):
            group.clean()
