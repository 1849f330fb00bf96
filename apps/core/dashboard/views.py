from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.http import require_GET

from apps.core.contributions.views import serialize_payment, serialize_period
from apps.core.groups.services import get_group
from apps.core.loans.views import serialize_loan, serialize_repayment
from apps.core.users.decorators import admin_required
from apps.core.utils.http import form_error_response, handles_ledger_errors, money

from .forms import DashboardPeriodForm
from .services import group_dashboard, member_statement


@login_required
@require_GET
def contributor_dashboard(request):
    statement = member_statement(request.user)
    payout = statement['upcoming_payout']

    return JsonResponse({
        'member_id': request.user.pk,
        'name': request.user.display_name,
        'total_contributed': money(statement['total_contributed']),
        'loan_balance': money(statement['loan_balance']),
        'monthly_repayment_due': money(statement['monthly_repayment_due']),
        'expected_contribution': money(statement['expected_contribution']),
        'upcoming_payout': serialize_period(payout) if payout else None,
        'payments': [
            {**serialize_payment(payment), 'period_label': payment.period.label, 'group_name': payment.period.group.name}
            for payment in statement['payments']
        ],
        'loans': [
            {
                **serialize_loan(loan),
                'group_name': loan.group.name,
                'repayments': [serialize_repayment(row) for row in loan.repayments.all()],
            }
            for loan in statement['loans']
        ],
    })


@login_required
@admin_required
@require_GET
@handles_ledger_errors
def group_summary(request, pk):
    form = DashboardPeriodForm(request.GET)
    if not form.is_valid():
        return form_error_response(form)

    group = get_group(pk)
    dashboard = group_dashboard(group, **form.cleaned_data)
    summary = dashboard['period']
    loans = dashboard['loans']

    period = None
    if summary is not None:
        period = {
            **serialize_period(summary['period']),
            'outstanding': money(summary['outstanding']),
            'status_counts': summary['status_counts'],
            'unpaid_members': summary['unpaid_members'],
        }

    return JsonResponse({
        'group': {'id': group.pk, 'name': group.name, 'contribution_amount': money(group.contribution_amount)},
        'month': dashboard['month'],
        'year': dashboard['year'],
        'active_members': dashboard['active_members'],
        'period': period,
        'loans': {
            'total_outstanding': money(loans['total_outstanding']),
            'total_principal': money(loans['total_principal']),
            'active_loans': loans['active_loans'],
            'paid_loans': loans['paid_loans'],
        },
        'active_loans': [
            {**serialize_loan(loan), 'member_name': loan.member.display_name}
            for loan in dashboard['active_loans']
        ],
        'recent_payments': [
            {**serialize_payment(payment), 'member_name': payment.member.display_name}
            for payment in dashboard['recent_payments']
        ],
    })
