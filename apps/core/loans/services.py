from __future__ import annotations

import logging

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count
from django.utils import timezone

from apps.core.groups.services import get_group, get_member
from apps.core.notifications.models import Notification
from apps.core.notifications.services import notify
from apps.core.users.audit import log_audit_event
from apps.core.utils.errors import ConcurrencyConflictError
from apps.core.utils.lookups import get_or_not_found
from apps.core.utils.money import ZERO, format_money, positive_amount, quantize, sum_amount
from apps.core.utils.retry import retry_on_conflict

from .models import Loan, LoanRepayment

logger = logging.getLogger(__name__)

REPAYMENT_TYPES = {value for value, _ in LoanRepayment.TYPE_CHOICES}


def _actor(user):
    return user if getattr(user, 'is_authenticated', False) else None


def _lock_loan(loan_id) -> Loan:
    return get_or_not_found(Loan, loan_id, queryset=Loan.objects.select_for_update())


def derive_loan_state(outstanding_balance, amount):
    """Balance and status after applying ``amount``; the balance clamps at zero."""
    new_balance = quantize(outstanding_balance - amount)
    if new_balance < 0:
        new_balance = ZERO
    new_status = Loan.STATUS_PAID if new_balance == 0 else Loan.STATUS_ACTIVE
    return new_balance, new_status


@transaction.atomic
def issue_loan(*, member_id, group_id, principal, monthly_repayment=None, issued_by=None):
    principal = positive_amount(principal, label='Principal')
    if monthly_repayment == '':
        monthly_repayment = None
    if monthly_repayment is not None:
        monthly_repayment = positive_amount(monthly_repayment, label='Monthly repayment')

    member = get_member(member_id)
    group = get_group(group_id)

    loan = Loan.objects.create(
        member=member,
        group=group,
        principal_amount=principal,
        outstanding_balance=principal,
        monthly_repayment=monthly_repayment,
        status=Loan.STATUS_ACTIVE,
        issued_date=timezone.localdate(),
        issued_by=_actor(issued_by),
    )

    log_audit_event(
        action='loans.loan_issued',
        actor=issued_by,
        target=loan,
        details=f"Member={member.pk}, Group={group.pk}, Principal={principal}",
    )
    repayment_note = (
        f" Monthly repayment: {format_money(monthly_repayment)}." if monthly_repayment is not None else ''
    )
    notify(
        user_id=member.pk,
        title='Loan Issued',
        message=f"A loan of {format_money(principal)} has been issued to you from {group.name}.{repayment_note}",
        n_type=Notification.TYPE_LOAN,
    )
    logger.info('Issued loan %s of %s to member %s', loan.pk, principal, member.pk)
    return loan


@retry_on_conflict
def record_repayment(*, loan_id, amount, repayment_type=LoanRepayment.TYPE_MANUAL, notes='', recorded_by=None):
    """
    Apply a repayment to a loan.

    Over-payments are accepted and clamp the balance at zero. The balance
    write is conditional on the value read under the row lock, so a
    concurrent repayment that slipped in between makes this attempt raise
    ``ConcurrencyConflictError`` and the whole operation is retried.
    """
    amount = positive_amount(amount)
    if repayment_type not in REPAYMENT_TYPES:
        raise ValidationError(f"Unrecognized repayment type: {repayment_type!r}.")

    with transaction.atomic():
        loan = _lock_loan(loan_id)
        if loan.is_paid:
            raise ValidationError('Loan is already fully repaid.')

        previous_balance = loan.outstanding_balance
        new_balance, new_status = derive_loan_state(previous_balance, amount)

        updated = Loan.objects.filter(
            pk=loan.pk,
            outstanding_balance=previous_balance,
        ).update(
            outstanding_balance=new_balance,
            status=new_status,
            updated_at=timezone.now(),
        )
        if updated != 1:
            raise ConcurrencyConflictError(f"Loan {loan.pk} balance changed during repayment.")

        repayment = LoanRepayment.objects.create(
            loan=loan,
            amount=amount,
            repayment_type=repayment_type,
            notes=(notes or '').strip(),
            balance_after=new_balance,
            recorded_by=_actor(recorded_by),
        )
        loan.refresh_from_db()

        log_audit_event(
            action='loans.repayment_recorded',
            actor=recorded_by,
            target=repayment,
            details=f"Loan={loan.pk}, Amount={amount}, Balance {previous_balance} -> {new_balance}",
        )
        if loan.is_paid:
            notify(
                user_id=loan.member_id,
                title='Loan Fully Repaid',
                message=(
                    f"Your repayment of {format_money(amount)} has been received. "
                    f"Your loan of {format_money(loan.principal_amount)} is now fully repaid."
                ),
                n_type=Notification.TYPE_LOAN,
            )
        else:
            notify(
                user_id=loan.member_id,
                title='Loan Repayment Received',
                message=(
                    f"Your repayment of {format_money(amount)} has been received. "
                    f"Outstanding balance: {format_money(loan.outstanding_balance)}."
                ),
                n_type=Notification.TYPE_LOAN,
            )

    logger.info('Repayment %s applied to loan %s, balance now %s', repayment.pk, loan.pk, loan.outstanding_balance)
    return {
        'loan': loan,
        'repayment': repayment,
    }


@transaction.atomic
def delete_loan(*, loan_id, deleted_by=None):
    """Delete a loan together with its repayment history."""
    loan = _lock_loan(loan_id)
    loan_pk = loan.pk
    member_id = loan.member_id
    principal = loan.principal_amount
    repayments_deleted = loan.repayments.count()

    log_audit_event(
        action='loans.loan_deleted',
        actor=deleted_by,
        target=loan,
        details=(
            f"Member={member_id}, Principal={principal}, "
            f"Outstanding={loan.outstanding_balance}, Repayments={repayments_deleted}"
        ),
    )
    loan.delete()

    notify(
        user_id=member_id,
        title='Loan Removed',
        message=f"Your loan record of {format_money(principal)} has been removed by an administrator.",
        n_type=Notification.TYPE_LOAN,
    )
    logger.info('Deleted loan %s and %s repayment rows', loan_pk, repayments_deleted)
    return {
        'loan_id': loan_pk,
        'repayments_deleted': repayments_deleted,
    }


def loan_balance_check(loan: Loan):
    repaid = sum_amount(loan.repayments.all())
    expected = quantize(loan.principal_amount - repaid)
    if expected < 0:
        expected = ZERO
    return {
        'loan': loan,
        'stored_balance': loan.outstanding_balance,
        'expected_balance': expected,
        'total_repaid': repaid,
        'is_consistent': expected == loan.outstanding_balance,
    }


def group_loan_summary(group):
    loans = Loan.objects.for_group(group)
    counts = dict(loans.values_list('status').annotate(total=Count('id')).order_by())
    return {
        'total_outstanding': sum_amount(loans, field_name='outstanding_balance'),
        'total_principal': sum_amount(loans, field_name='principal_amount'),
        'active_loans': counts.get(Loan.STATUS_ACTIVE, 0),
        'paid_loans': counts.get(Loan.STATUS_PAID, 0),
    }


def get_loan(loan_id) -> Loan:
    return get_or_not_found(Loan, loan_id)
