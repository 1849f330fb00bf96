from django.db.models import Prefetch
from django.utils import timezone

from apps.core.contributions.models import ContributionPayment, MonthlyContribution
from apps.core.contributions.services import period_summary
from apps.core.groups.services import active_member_count
from apps.core.loans.models import Loan, LoanRepayment
from apps.core.loans.services import group_loan_summary
from apps.core.utils.money import ZERO, sum_amount

RECENT_PAYMENT_LIMIT = 10


def member_statement(user):
    """A member's own contributions, loans and repayments."""
    payments = (
        ContributionPayment.objects
        .filter(member=user)
        .select_related('period__group')
        .order_by('-payment_date', '-id')
    )
    loans = (
        Loan.objects
        .filter(member=user)
        .select_related('group')
        .prefetch_related(Prefetch('repayments', queryset=LoanRepayment.objects.order_by('repayment_date', 'id')))
    )
    active_loans = loans.filter(status=Loan.STATUS_ACTIVE)

    upcoming_payout = (
        MonthlyContribution.objects
        .filter(beneficiary=user, is_finalized=False)
        .select_related('group')
        .order_by('year', 'month')
        .first()
    )
    membership = (
        user.group_memberships
        .filter(is_active=True, group__is_active=True)
        .select_related('group')
        .order_by('joined_at', 'id')
        .first()
    )

    return {
        'member': user,
        'total_contributed': sum_amount(payments.filter(status=ContributionPayment.STATUS_PAID)),
        'loan_balance': sum_amount(active_loans, field_name='outstanding_balance'),
        'monthly_repayment_due': sum_amount(active_loans, field_name='monthly_repayment'),
        'expected_contribution': membership.group.contribution_amount if membership else ZERO,
        'upcoming_payout': upcoming_payout,
        'payments': list(payments),
        'loans': list(loans),
    }


def group_dashboard(group, month=None, year=None):
    today = timezone.localdate()
    month = month or today.month
    year = year or today.year

    period = MonthlyContribution.objects.for_group(group).filter(month=month, year=year).first()
    active_loans = (
        Loan.objects.for_group(group)
        .filter(status=Loan.STATUS_ACTIVE)
        .select_related('member')
        .order_by('-outstanding_balance', 'id')
    )
    recent_payments = (
        ContributionPayment.objects
        .filter(period__group=group)
        .select_related('member', 'period')
        .order_by('-payment_date', '-id')[:RECENT_PAYMENT_LIMIT]
    )

    return {
        'group': group,
        'month': month,
        'year': year,
        'active_members': active_member_count(group),
        'period': period_summary(period) if period else None,
        'loans': group_loan_summary(group),
        'active_loans': list(active_loans),
        'recent_payments': list(recent_payments),
    }
