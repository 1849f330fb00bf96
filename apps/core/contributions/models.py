import calendar
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import Q

from apps.core.groups.models import ContributionGroup
from apps.core.utils.managers import FinancialRecordModel, GroupManager


class MonthlyContribution(models.Model):
    group = models.ForeignKey(
        ContributionGroup,
        on_delete=models.PROTECT,
        related_name='periods',
    )
    month = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(12)],
    )
    year = models.PositiveSmallIntegerField(
        validators=[MinValueValidator(2000), MaxValueValidator(2100)],
    )

    beneficiary = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='beneficiary_periods',
    )
    beneficiary_bank_name = models.CharField(max_length=120, blank=True)
    beneficiary_account_name = models.CharField(max_length=120, blank=True)
    beneficiary_account_number = models.CharField(max_length=34, blank=True)
    beneficiary_sort_code = models.CharField(max_length=12, blank=True)

    per_member_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_expected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    is_finalized = models.BooleanField(default=False)
    finalized_at = models.DateTimeField(null=True, blank=True)
    finalized_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='finalized_periods',
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_periods',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = GroupManager()

    class Meta:
        ordering = ['-year', '-month', 'group__name']
        constraints = [
            models.UniqueConstraint(
                fields=['group', 'month', 'year'],
                name='unique_period_per_group_month',
            ),
            models.CheckConstraint(
                condition=Q(month__gte=1) & Q(month__lte=12),
                name='period_month_in_range',
            ),
            models.CheckConstraint(
                condition=Q(total_collected__gte=0) & Q(total_expected__gte=0),
                name='period_totals_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['group', 'year', 'month'], name='period_group_year_month_idx'),
            models.Index(fields=['is_finalized'], name='period_finalized_idx'),
        ]

    @property
    def label(self):
        return f"{calendar.month_name[self.month]} {self.year}"

    @property
    def outstanding(self):
        remaining = (self.total_expected or Decimal('0.00')) - (self.total_collected or Decimal('0.00'))
        return remaining if remaining > 0 else Decimal('0.00')

    def clean(self):
        super().clean()
        if self.beneficiary_sort_code and not self.beneficiary_sort_code.isdigit():
            raise ValidationError({'beneficiary_sort_code': 'Sort code must contain only numbers.'})
        if self.per_member_amount is None or self.per_member_amount <= 0:
            raise ValidationError({'per_member_amount': 'Per-member amount must be greater than zero.'})

    def __str__(self):
        return f"{self.group} - {self.label}"


class ContributionPayment(models.Model):
    STATUS_PENDING = 'pending'
    STATUS_PAID = 'paid'
    STATUS_PARTIAL = 'partial'
    STATUS_OVERDUE = 'overdue'
    STATUS_REJECTED = 'rejected'
    STATUS_CHOICES = (
        (STATUS_PENDING, 'Pending'),
        (STATUS_PAID, 'Paid'),
        (STATUS_PARTIAL, 'Partial'),
        (STATUS_OVERDUE, 'Overdue'),
        (STATUS_REJECTED, 'Rejected'),
    )

    period = models.ForeignKey(
        MonthlyContribution,
        on_delete=models.PROTECT,
        related_name='payments',
    )
    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='contribution_payments',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_date = models.DateTimeField()
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_contribution_payments',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-payment_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='contribution_payment_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['period', 'status'], name='payment_period_status_idx'),
            models.Index(fields=['member', '-payment_date'], name='payment_member_date_idx'),
        ]

    @property
    def is_paid(self):
        return self.status == self.STATUS_PAID

    def __str__(self):
        return f"{self.member} - {self.amount} ({self.status})"


class PaymentEvent(FinancialRecordModel):
    TYPE_CREATED = 'created'
    TYPE_UPDATED = 'updated'
    TYPE_DELETED = 'deleted'
    TYPE_CHOICES = (
        (TYPE_CREATED, 'Created'),
        (TYPE_UPDATED, 'Updated'),
        (TYPE_DELETED, 'Deleted'),
    )

    event_type = models.CharField(max_length=10, choices=TYPE_CHOICES)
    payment_id_snapshot = models.BigIntegerField(db_index=True)
    period = models.ForeignKey(
        MonthlyContribution,
        on_delete=models.PROTECT,
        related_name='payment_events',
    )
    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='payment_events',
    )
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=ContributionPayment.STATUS_CHOICES)

    previous_member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+',
    )
    previous_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    previous_status = models.CharField(
        max_length=20,
        choices=ContributionPayment.STATUS_CHOICES,
        blank=True,
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['period', 'created_at'], name='payment_event_period_idx'),
        ]

    @property
    def paid_delta(self):
        """Change this event made to the period's collected total."""
        before = self.previous_amount if self.previous_status == ContributionPayment.STATUS_PAID else Decimal('0.00')
        after = self.amount if self.status == ContributionPayment.STATUS_PAID else Decimal('0.00')
        if self.event_type == self.TYPE_DELETED:
            return -after
        if self.event_type == self.TYPE_CREATED:
            return after
        return after - (before or Decimal('0.00'))

    def save(self, *args, **kwargs):
        if self.pk and PaymentEvent.objects.filter(pk=self.pk).exists():
            raise ValidationError('Payment events are append-only.')
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.event_type} payment #{self.payment_id_snapshot}"
