from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from apps.core.groups.models import ContributionGroup
from apps.core.utils.managers import FinancialRecordModel, GroupManager


class Loan(models.Model):
    STATUS_ACTIVE = 'active'
    STATUS_PAID = 'paid'
    STATUS_CHOICES = (
        (STATUS_ACTIVE, 'Active'),
        (STATUS_PAID, 'Paid'),
    )

    member = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='loans',
    )
    group = models.ForeignKey(
        ContributionGroup,
        on_delete=models.PROTECT,
        related_name='loans',
    )
    principal_amount = models.DecimalField(max_digits=12, decimal_places=2)
    outstanding_balance = models.DecimalField(max_digits=12, decimal_places=2)
    monthly_repayment = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    issued_date = models.DateField(default=timezone.localdate)
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='issued_loans',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = GroupManager()

    class Meta:
        ordering = ['-issued_date', '-id']
        constraints = [
            models.CheckConstraint(
                condition=Q(principal_amount__gt=0),
                name='loan_principal_positive',
            ),
            models.CheckConstraint(
                condition=Q(outstanding_balance__gte=0) & Q(outstanding_balance__lte=F('principal_amount')),
                name='loan_balance_within_principal',
            ),
            models.CheckConstraint(
                condition=(
                    Q(status='paid', outstanding_balance=0)
                    | Q(status='active', outstanding_balance__gt=0)
                ),
                name='loan_status_matches_balance',
            ),
        ]
        indexes = [
            models.Index(fields=['member', 'status'], name='loan_member_status_idx'),
            models.Index(fields=['group', 'status'], name='loan_group_status_idx'),
        ]

    @property
    def amount_repaid(self):
        return self.principal_amount - self.outstanding_balance

    @property
    def is_paid(self):
        return self.status == self.STATUS_PAID

    def __str__(self):
        return f"Loan {self.id} - {self.member} - {self.status}"


class LoanRepayment(FinancialRecordModel):
    TYPE_MANUAL = 'manual'
    TYPE_AUTO_DEDUCTION = 'auto_deduction'
    TYPE_PARTIAL = 'partial'
    TYPE_BANK_TRANSFER = 'bank_transfer'
    TYPE_CHOICES = (
        (TYPE_MANUAL, 'Manual Payment'),
        (TYPE_AUTO_DEDUCTION, 'Auto Deduction (from payout)'),
        (TYPE_PARTIAL, 'Partial Payment'),
        (TYPE_BANK_TRANSFER, 'Bank Transfer'),
    )

    loan = models.ForeignKey(Loan, on_delete=models.CASCADE, related_name='repayments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    repayment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default=TYPE_MANUAL)
    notes = models.TextField(blank=True)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    repayment_date = models.DateTimeField(default=timezone.now)
    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='recorded_loan_repayments',
    )

    class Meta:
        ordering = ['repayment_date', 'id']
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name='loan_repayment_amount_positive',
            ),
        ]
        indexes = [
            models.Index(fields=['loan', 'repayment_date'], name='loan_repayment_loan_date_idx'),
        ]

    def __str__(self):
        return f"{self.loan} - {self.amount}"
