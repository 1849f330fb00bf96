from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from apps.core.users.decorators import admin_required
from apps.core.utils.http import form_error_response, handles_ledger_errors, money

from .forms import LoanDeleteForm, LoanIssueForm, LoanRepaymentForm
from .services import delete_loan, get_loan, issue_loan, loan_balance_check, record_repayment


def serialize_loan(loan):
    return {
        'id': loan.id,
        'member_id': loan.member_id,
        'group_id': loan.group_id,
        'principal_amount': money(loan.principal_amount),
        'outstanding_balance': money(loan.outstanding_balance),
        'amount_repaid': money(loan.amount_repaid),
        'monthly_repayment': money(loan.monthly_repayment),
        'status': loan.status,
        'issued_date': loan.issued_date.isoformat(),
    }


def serialize_repayment(repayment):
    return {
        'id': repayment.id,
        'loan_id': repayment.loan_id,
        'amount': money(repayment.amount),
        'repayment_type': repayment.repayment_type,
        'notes': repayment.notes,
        'balance_after': money(repayment.balance_after),
        'repayment_date': repayment.repayment_date.isoformat(),
    }


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def loan_issue(request):
    form = LoanIssueForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    loan = issue_loan(issued_by=request.user, **form.cleaned_data)
    return JsonResponse({'loan': serialize_loan(loan)}, status=201)


@login_required
@admin_required
@require_GET
@handles_ledger_errors
def loan_detail(request, pk):
    loan = get_loan(pk)
    check = loan_balance_check(loan)
    return JsonResponse({
        'loan': serialize_loan(loan),
        'repayments': [serialize_repayment(row) for row in loan.repayments.all()],
        'total_repaid': money(check['total_repaid']),
        'is_consistent': check['is_consistent'],
    })


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def loan_repayment_create(request, pk):
    form = LoanRepaymentForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = record_repayment(loan_id=pk, recorded_by=request.user, **form.cleaned_data)
    return JsonResponse({
        'loan': serialize_loan(result['loan']),
        'repayment': serialize_repayment(result['repayment']),
    }, status=201)


@login_required
@admin_required
@require_POST
@handles_ledger_errors
def loan_delete(request, pk):
    form = LoanDeleteForm(request.POST)
    if not form.is_valid():
        return form_error_response(form)

    result = delete_loan(loan_id=pk, deleted_by=request.user)
    return JsonResponse({
        'deleted_loan_id': result['loan_id'],
        'repayments_deleted': result['repayments_deleted'],
    })
