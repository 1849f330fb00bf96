from django.contrib.auth import get_user_model

from apps.core.utils.lookups import get_or_not_found

from .models import ContributionGroup, GroupMembership


def get_group(group_id) -> ContributionGroup:
    return get_or_not_found(ContributionGroup, group_id)


def get_member(member_id):
    user_model = get_user_model()
    return get_or_not_found(user_model, member_id, queryset=user_model.objects.filter(is_active=True))


def active_memberships(group):
    return GroupMembership.objects.for_group(group).filter(
        is_active=True,
        user__is_active=True,
    ).select_related('user')


def active_member_count(group) -> int:
    return active_memberships(group).count()


def active_members(group):
    return [membership.user for membership in active_memberships(group)]
