from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from apps.core.utils.managers import GroupManager


class ContributionGroup(models.Model):
    name = models.CharField(max_length=120, unique=True)
    description = models.CharField(max_length=255, blank=True)
    contribution_amount = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name', 'id']

    def clean(self):
        super().clean()
        if self.name:
            self.name = self.name.strip()
        if not self.name:
            raise ValidationError({'name': 'Group name is required.'})
        if self.contribution_amount is None or self.contribution_amount <= 0:
            raise ValidationError({'contribution_amount': 'Contribution amount must be greater than zero.'})

    def __str__(self):
        return self.name


class GroupMembership(models.Model):
    group = models.ForeignKey(
        ContributionGroup,
        on_delete=models.CASCADE,
        related_name='memberships',
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='group_memberships',
    )
    is_active = models.BooleanField(default=True)
    joined_at = models.DateTimeField(auto_now_add=True)

    objects = GroupManager()

    class Meta:
        ordering = ['group__name', 'joined_at', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['group', 'user'],
                name='unique_membership_per_group',
            ),
        ]
        indexes = [
            models.Index(fields=['group', 'is_active'], name='membership_group_active_idx'),
        ]

    def __str__(self):
        return f"{self.user} in {self.group}"
