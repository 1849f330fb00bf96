from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from apps.core.users.decorators import admin_required
from apps.core.utils.forms import ConfirmationForm
from apps.core.utils.http import form_error_response, handles_ledger_errors, money
from apps.core.utils.lookups import get_or_not_found

from .forms import (
    PaymentEditForm,
    PaymentRecordForm,
    PaymentStatusForm,
    PeriodCreateForm,
    PeriodDetailsForm,
)
from .models import MonthlyContribution
from .services import (
    create_period,
    delete_payment,
    edit_payment,
    finalize_period,
    period_summary,
    recompute_collected,
    record_payment,
    update_payment_status,
    update_period_details,
)


def serialize_period(period):
    return {
        'id': period.id,
        'group_id': period.group_id,
        'month': period.month,
        'year': period.year,
        'label': period.label,
        'beneficiary_id': period.beneficiary_id,
        'beneficiary_bank_name': period.beneficiary_bank_name,
        'beneficiary_account_name': period.beneficiary_account_name,
        'per_member_amount': money(period.per_member_amount),
        'total_expected': money(period.total_expected),
        'total_collected': money(period.total_collected),
        'is_finalized': period.is_finalized,
    }


def serialize_payment(payment):
    return {
        'id': payment.id,
        'period_id': payment.period_id,
        'member_id': payment.member_id,
        'amount': money(payment.amount),
        'status': payment.status,
        'payment_date': payment.payment_date.isoformat(),
    }


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def period_create(request):
    form = PeriodCreateForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    period = create_period(created_by=request.user, **form.cleaned_data)
    return JsonResponse({'period': serialize_period(period)}, status=201)


@login_required
@admin_required
@require_GET
@handles_ledger_errors
def period_detail(request, pk):
    period = get_or_not_found(MonthlyContribution, pk)
    summary = period_summary(period)
    return JsonResponse({
        'period': serialize_period(period),
        'outstanding': money(summary['outstanding']),
        'status_counts': summary['status_counts'],
        'members': [
            {**row, 'paid_total': money(row['paid_total'])}
            for row in summary['members']
        ],
        'unpaid_members': summary['unpaid_members'],
    })


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def period_finalize(request, pk):
    period = finalize_period(period_id=pk, finalized_by=request.user)
    return JsonResponse({'period': serialize_period(period)})


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def period_recompute(request, pk):
    period = recompute_collected(pk)
    return JsonResponse({'period': serialize_period(period)})


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def payment_record(request):
    form = PaymentRecordForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = record_payment(recorded_by=request.user, **form.cleaned_data)
    return JsonResponse({
        'payment': serialize_payment(result['payment']),
        'period': serialize_period(result['period']),
    }, status=201)


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def payment_update_status(request, pk):
    form = PaymentStatusForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = update_payment_status(payment_id=pk, status=form.cleaned_data['status'], updated_by=request.user)
    return JsonResponse({
        'payment': serialize_payment(result['payment']),
        'period': serialize_period(result['period']),
    })


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def payment_edit(request, pk):
    form = PaymentEditForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = edit_payment(payment_id=pk, updated_by=request.user, **form.cleaned_data)
    return JsonResponse({
        'payment': serialize_payment(result['payment']),
        'period': serialize_period(result['period']),
    })


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def payment_delete(request, pk):
    form = ConfirmationForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = delete_payment(payment_id=pk, deleted_by=request.user)
    return JsonResponse({
        'deleted_payment_id': result['payment_id'],
        'period': serialize_period(result['period']),
    })


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def period_update_details(request, pk):
    form = PeriodDetailsForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    period = update_period_details(period_id=pk, updated_by=request.user, **form.changed_details())
    return JsonResponse({'period': serialize_period(period)})
