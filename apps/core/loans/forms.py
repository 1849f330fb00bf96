from django import forms

from apps.core.utils.forms import ConfirmationForm

from .models import LoanRepayment


class LoanIssueForm(forms.Form):
    member_id = forms.IntegerField()
    group_id = forms.IntegerField()
    principal = forms.DecimalField(max_digits=12, decimal_places=2)
    monthly_repayment = forms.DecimalField(max_digits=12, decimal_places=2, required=False)


class LoanRepaymentForm(forms.Form):
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    repayment_type = forms.ChoiceField(
        choices=LoanRepayment.TYPE_CHOICES,
        initial=LoanRepayment.TYPE_MANUAL,
    )
    notes = forms.CharField(required=False, widget=forms.Textarea)


class LoanDeleteForm(ConfirmationForm):
    pass
