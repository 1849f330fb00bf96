from __future__ import annotations

import logging
from collections import OrderedDict

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from apps.core.groups.services import active_member_count, active_members, get_group, get_member
from apps.core.notifications.models import Notification
from apps.core.notifications.services import notify, notify_many
from apps.core.users.audit import log_audit_event
from apps.core.utils.errors import PeriodLockedError
from apps.core.utils.lookups import get_or_not_found
from apps.core.utils.money import ZERO, format_money, positive_amount, quantize, sum_amount

from .models import ContributionPayment, MonthlyContribution, PaymentEvent

logger = logging.getLogger(__name__)

PAYMENT_STATUSES = {value for value, _ in ContributionPayment.STATUS_CHOICES}


class PeriodLockGuard:
    """Gate consulted by every payment-mutating call."""

    @staticmethod
    def is_locked(period: MonthlyContribution) -> bool:
        return bool(period.is_finalized)

    @classmethod
    def ensure_unlocked(cls, period: MonthlyContribution):
        if cls.is_locked(period):
            raise PeriodLockedError(period)


def _validate_status(status) -> str:
    normalized = (status or '').strip().lower() if isinstance(status, str) else status
    if normalized not in PAYMENT_STATUSES:
        raise ValidationError(f"Unrecognized payment status: {status!r}.")
    return normalized


def _validate_month_year(month, year):
    try:
        month = int(month)
        year = int(year)
    except (TypeError, ValueError):
        raise ValidationError('Month and year must be whole numbers.')
    if month < 1 or month > 12:
        raise ValidationError('Month must be between 1 and 12.')
    if year < 2000 or year > 2100:
        raise ValidationError('Year must be between 2000 and 2100.')
    return month, year


def _validate_sort_code(sort_code) -> str:
    sort_code = (sort_code or '').strip()
    if sort_code and not sort_code.isdigit():
        raise ValidationError('Sort code must contain only numbers.')
    return sort_code


def _lock_period(period_id) -> MonthlyContribution:
    return get_or_not_found(
        MonthlyContribution,
        period_id,
        queryset=MonthlyContribution.objects.select_for_update().select_related('group'),
    )


def _payment_for_update(payment_id):
    """Lock the owning period before the payment row, always in that order."""
    payment = get_or_not_found(ContributionPayment, payment_id)
    period = _lock_period(payment.period_id)
    payment = get_or_not_found(
        ContributionPayment,
        payment_id,
        queryset=ContributionPayment.objects.select_for_update(),
    )
    return payment, period


def _record_event(*, event_type, payment, actor=None, previous=None):
    previous = previous or {}
    return PaymentEvent.objects.create(
        event_type=event_type,
        payment_id_snapshot=payment.pk,
        period_id=payment.period_id,
        member_id=payment.member_id,
        amount=payment.amount,
        status=payment.status,
        previous_member_id=previous.get('member_id'),
        previous_amount=previous.get('amount'),
        previous_status=previous.get('status', ''),
        actor=actor if getattr(actor, 'is_authenticated', False) else None,
    )


def _snapshot(payment):
    return {
        'member_id': payment.member_id,
        'amount': payment.amount,
        'status': payment.status,
    }


@transaction.atomic
def recompute_collected(period_id) -> MonthlyContribution:
    """
    Rebuild ``total_collected`` from the full payment set of a period.

    Always a complete re-scan of the "paid" rows, so it is safe to call
    repeatedly and repairs totals left stale by an interrupted request.
    Finalized periods are recomputed too; this only restores the invariant.
    """
    period = _lock_period(period_id)
    total = sum_amount(period.payments.filter(status=ContributionPayment.STATUS_PAID))
    if period.total_collected != total:
        logger.info(
            'Period %s total_collected %s -> %s',
            period.pk,
            period.total_collected,
            total,
        )
        period.total_collected = total
        period.save(update_fields=['total_collected', 'updated_at'])
    return period


def recompute_group_totals(*, group=None) -> int:
    periods = MonthlyContribution.objects.all()
    if group is not None:
        periods = periods.for_group(group)

    recomputed = 0
    for period_id in periods.values_list('id', flat=True):
        recompute_collected(period_id)
        recomputed += 1
    return recomputed


@transaction.atomic
def create_period(
    *,
    group_id,
    month,
    year,
    per_member_amount=None,
    beneficiary_id=None,
    beneficiary_bank_name='',
    beneficiary_account_name='',
    beneficiary_account_number='',
    beneficiary_sort_code='',
    created_by=None,
):
    group = get_group(group_id)
    month, year = _validate_month_year(month, year)
    if per_member_amount in (None, ''):
        per_member_amount = group.contribution_amount
    per_member = positive_amount(per_member_amount, label='Per-member amount')
    sort_code = _validate_sort_code(beneficiary_sort_code)
    beneficiary = get_member(beneficiary_id) if beneficiary_id not in (None, '') else None

    if MonthlyContribution.objects.filter(group=group, month=month, year=year).exists():
        raise ValidationError(f'A contribution period for {group.name} {month}/{year} already exists.')

    members = active_members(group)
    period = MonthlyContribution.objects.create(
        group=group,
        month=month,
        year=year,
        beneficiary=beneficiary,
        beneficiary_bank_name=(beneficiary_bank_name or '').strip(),
        beneficiary_account_name=(beneficiary_account_name or '').strip(),
        beneficiary_account_number=(beneficiary_account_number or '').strip(),
        beneficiary_sort_code=sort_code,
        per_member_amount=per_member,
        total_expected=quantize(per_member * len(members)),
        total_collected=ZERO,
        created_by=created_by if getattr(created_by, 'is_authenticated', False) else None,
    )

    log_audit_event(
        action='contributions.period_created',
        actor=created_by,
        target=period,
        details=f"Group={group.pk}, Period={period.label}, Expected={period.total_expected}",
    )
    notify_many(
        user_ids=[member.pk for member in members],
        title=f"New Contribution Period: {period.label}",
        message=(
            f"The {period.label} contribution period for {group.name} is now open. "
            f"Your expected contribution is {format_money(per_member)}."
        ),
        n_type=Notification.TYPE_PERIOD,
    )
    logger.info('Created period %s for group %s (expected %s)', period.pk, group.pk, period.total_expected)
    return period


_UNCHANGED = object()


@transaction.atomic
def update_period_details(
    *,
    period_id,
    beneficiary_id=_UNCHANGED,
    beneficiary_bank_name=None,
    beneficiary_account_name=None,
    beneficiary_account_number=None,
    beneficiary_sort_code=None,
    updated_by=None,
):
    period = _lock_period(period_id)
    PeriodLockGuard.ensure_unlocked(period)

    update_fields = []
    if beneficiary_id is not _UNCHANGED:
        period.beneficiary = get_member(beneficiary_id) if beneficiary_id not in (None, '') else None
        update_fields.append('beneficiary')

    text_fields = {
        'beneficiary_bank_name': beneficiary_bank_name,
        'beneficiary_account_name': beneficiary_account_name,
        'beneficiary_account_number': beneficiary_account_number,
    }
    for field_name, value in text_fields.items():
        if value is not None:
            setattr(period, field_name, value.strip())
            update_fields.append(field_name)

    if beneficiary_sort_code is not None:
        period.beneficiary_sort_code = _validate_sort_code(beneficiary_sort_code)
        update_fields.append('beneficiary_sort_code')

    if update_fields:
        period.save(update_fields=update_fields + ['updated_at'])
        log_audit_event(
            action='contributions.period_updated',
            actor=updated_by,
            target=period,
            details=f"Fields={','.join(update_fields)}",
        )
    return period


@transaction.atomic
def finalize_period(*, period_id, finalized_by=None):
    period = _lock_period(period_id)
    PeriodLockGuard.ensure_unlocked(period)

    period = recompute_collected(period.pk)
    period.is_finalized = True
    period.finalized_at = timezone.now()
    period.finalized_by = finalized_by if getattr(finalized_by, 'is_authenticated', False) else None
    period.save(update_fields=['is_finalized', 'finalized_at', 'finalized_by', 'updated_at'])

    log_audit_event(
        action='contributions.period_finalized',
        actor=finalized_by,
        target=period,
        details=f"Collected={period.total_collected}, Expected={period.total_expected}",
    )
    if period.beneficiary_id:
        notify(
            user_id=period.beneficiary_id,
            title=f"Payout Finalized: {period.label}",
            message=(
                f"The {period.label} contribution for {period.group.name} has been finalized. "
                f"Total collected for your payout: {format_money(period.total_collected)}."
            ),
            n_type=Notification.TYPE_PERIOD,
        )
    logger.info('Finalized period %s with %s collected', period.pk, period.total_collected)
    return period


@transaction.atomic
def recalculate_expected_total(*, period_id, actor=None):
    """
    Re-snapshot ``total_expected`` from the group's current active members.

    Periods keep the expected total captured at creation; this is the
    explicit, audited way to bring an open period in line with membership
    changes made afterwards.
    """
    period = _lock_period(period_id)
    PeriodLockGuard.ensure_unlocked(period)

    previous_total = period.total_expected
    period.total_expected = quantize(period.per_member_amount * active_member_count(period.group))
    if period.total_expected != previous_total:
        period.save(update_fields=['total_expected', 'updated_at'])
        log_audit_event(
            action='contributions.expected_recalculated',
            actor=actor,
            target=period,
            details=f"Expected {previous_total} -> {period.total_expected}",
        )
    return {
        'period': period,
        'previous_total_expected': previous_total,
    }


@transaction.atomic
def record_payment(*, period_id, member_id, amount, status=ContributionPayment.STATUS_PAID, recorded_by=None):
    amount = positive_amount(amount)
    status = _validate_status(status)

    period = _lock_period(period_id)
    PeriodLockGuard.ensure_unlocked(period)
    member = get_member(member_id)

    payment = ContributionPayment.objects.create(
        period=period,
        member=member,
        amount=amount,
        status=status,
        payment_date=timezone.now(),
        recorded_by=recorded_by if getattr(recorded_by, 'is_authenticated', False) else None,
    )
    event = _record_event(event_type=PaymentEvent.TYPE_CREATED, payment=payment, actor=recorded_by)
    period = recompute_collected(period.pk)

    log_audit_event(
        action='contributions.payment_recorded',
        actor=recorded_by,
        target=payment,
        details=f"Period={period.pk}, Member={member.pk}, Amount={amount}, Status={status}",
    )
    if payment.is_paid:
        notify(
            user_id=member.pk,
            title='Payment Confirmed',
            message=(
                f"Your contribution of {format_money(amount)} for {period.label} "
                f"has been recorded. Thank you!"
            ),
        )
    logger.info('Recorded payment %s (%s, %s) in period %s', payment.pk, amount, status, period.pk)
    return {
        'payment': payment,
        'period': period,
        'event': event,
    }


@transaction.atomic
def update_payment_status(*, payment_id, status, updated_by=None):
    """
    Set a payment's status. Every transition is allowed so admins can
    correct mistakes, including moving a paid row back to pending.
    """
    status = _validate_status(status)
    payment, period = _payment_for_update(payment_id)
    PeriodLockGuard.ensure_unlocked(period)

    previous = _snapshot(payment)
    payment.status = status
    payment.save(update_fields=['status', 'updated_at'])
    event = _record_event(
        event_type=PaymentEvent.TYPE_UPDATED,
        payment=payment,
        actor=updated_by,
        previous=previous,
    )
    period = recompute_collected(period.pk)

    log_audit_event(
        action='contributions.payment_status_updated',
        actor=updated_by,
        target=payment,
        details=f"Status {previous['status']} -> {status}",
    )

    was_paid = previous['status'] == ContributionPayment.STATUS_PAID
    if payment.is_paid and not was_paid:
        notify(
            user_id=payment.member_id,
            title='Payment Confirmed',
            message=(
                f"Your contribution of {format_money(payment.amount)} for {period.label} "
                f"has been confirmed. Thank you!"
            ),
        )
    elif was_paid and not payment.is_paid:
        notify(
            user_id=payment.member_id,
            title='Payment Status Updated',
            message=(
                f"Your contribution of {format_money(payment.amount)} for {period.label} "
                f"is now marked as {payment.get_status_display().lower()}."
            ),
        )
    return {
        'payment': payment,
        'period': period,
        'event': event,
    }


@transaction.atomic
def edit_payment(*, payment_id, member_id, amount, status, updated_by=None):
    amount = positive_amount(amount)
    status = _validate_status(status)
    payment, period = _payment_for_update(payment_id)
    PeriodLockGuard.ensure_unlocked(period)
    member = get_member(member_id)

    previous = _snapshot(payment)
    payment.member = member
    payment.amount = amount
    payment.status = status
    payment.payment_date = timezone.now()
    payment.save(update_fields=['member', 'amount', 'status', 'payment_date', 'updated_at'])
    event = _record_event(
        event_type=PaymentEvent.TYPE_UPDATED,
        payment=payment,
        actor=updated_by,
        previous=previous,
    )
    period = recompute_collected(period.pk)

    log_audit_event(
        action='contributions.payment_edited',
        actor=updated_by,
        target=payment,
        details=(
            f"Member {previous['member_id']} -> {member.pk}, "
            f"Amount {previous['amount']} -> {amount}, "
            f"Status {previous['status']} -> {status}"
        ),
    )
    notify(
        user_id=member.pk,
        title='Payment Updated',
        message=(
            f"Your contribution for {period.label} has been updated: "
            f"{format_money(amount)} ({payment.get_status_display().lower()})."
        ),
    )
    if previous['member_id'] != member.pk:
        notify(
            user_id=previous['member_id'],
            title='Payment Reassigned',
            message=(
                f"A payment of {format_money(previous['amount'])} for {period.label} "
                f"is no longer recorded against your account."
            ),
        )
    return {
        'payment': payment,
        'period': period,
        'event': event,
    }


@transaction.atomic
def delete_payment(*, payment_id, deleted_by=None):
    payment, period = _payment_for_update(payment_id)
    PeriodLockGuard.ensure_unlocked(period)

    event = _record_event(event_type=PaymentEvent.TYPE_DELETED, payment=payment, actor=deleted_by)
    snapshot = _snapshot(payment)
    status_label = payment.get_status_display().lower()
    payment_pk = payment.pk
    payment.delete()
    period = recompute_collected(period.pk)

    log_audit_event(
        action='contributions.payment_deleted',
        actor=deleted_by,
        target=period,
        details=f"Payment={payment_pk}, Member={snapshot['member_id']}, Amount={snapshot['amount']}, Status={snapshot['status']}",
    )
    notify(
        user_id=snapshot['member_id'],
        title='Payment Removed',
        message=(
            f"Your {status_label} contribution of {format_money(snapshot['amount'])} "
            f"for {period.label} has been removed by an administrator."
        ),
    )
    logger.info('Deleted payment %s from period %s', payment_pk, period.pk)
    return {
        'payment_id': payment_pk,
        'period': period,
        'event': event,
    }


def period_summary(period: MonthlyContribution):
    payments = list(period.payments.select_related('member').order_by('member_id', 'payment_date', 'id'))

    status_counts = {value: 0 for value in PAYMENT_STATUSES}
    member_rows = OrderedDict()
    for payment in payments:
        status_counts[payment.status] += 1
        row = member_rows.setdefault(payment.member_id, {
            'member_id': payment.member_id,
            'name': payment.member.display_name,
            'paid_total': ZERO,
            'payments': 0,
        })
        row['payments'] += 1
        if payment.is_paid:
            row['paid_total'] = quantize(row['paid_total'] + payment.amount)

    paid_member_ids = {row['member_id'] for row in member_rows.values() if row['paid_total'] > 0}
    unpaid_members = [
        {'member_id': member.pk, 'name': member.display_name}
        for member in active_members(period.group)
        if member.pk not in paid_member_ids
    ]

    return {
        'period': period,
        'total_expected': period.total_expected,
        'total_collected': period.total_collected,
        'outstanding': period.outstanding,
        'status_counts': status_counts,
        'members': list(member_rows.values()),
        'unpaid_members': unpaid_members,
    }
