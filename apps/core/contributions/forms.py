from django import forms
from django.core.validators import RegexValidator

from .models import ContributionPayment

digits_only = RegexValidator(r'^[0-9]*$', 'Sort code must contain only numbers.')


class PeriodCreateForm(forms.Form):
    group_id = forms.IntegerField()
    month = forms.IntegerField(min_value=1, max_value=12)
    year = forms.IntegerField(min_value=2000, max_value=2100)
    per_member_amount = forms.DecimalField(max_digits=12, decimal_places=2, required=False)
    beneficiary_id = forms.IntegerField(required=False)
    beneficiary_bank_name = forms.CharField(max_length=120, required=False)
    beneficiary_account_name = forms.CharField(max_length=120, required=False)
    beneficiary_account_number = forms.CharField(max_length=34, required=False)
    beneficiary_sort_code = forms.CharField(max_length=12, required=False, validators=[digits_only])


class PaymentRecordForm(forms.Form):
    period_id = forms.IntegerField()
    member_id = forms.IntegerField()
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    status = forms.ChoiceField(
        choices=ContributionPayment.STATUS_CHOICES,
        initial=ContributionPayment.STATUS_PAID,
    )


class PaymentStatusForm(forms.Form):
    status = forms.ChoiceField(choices=ContributionPayment.STATUS_CHOICES)


class PaymentEditForm(forms.Form):
    member_id = forms.IntegerField()
    amount = forms.DecimalField(max_digits=12, decimal_places=2)
    status = forms.ChoiceField(choices=ContributionPayment.STATUS_CHOICES)


class PeriodDetailsForm(forms.Form):
    beneficiary_id = forms.IntegerField(required=False)
    beneficiary_bank_name = forms.CharField(max_length=120, required=False)
    beneficiary_account_name = forms.CharField(max_length=120, required=False)
    beneficiary_account_number = forms.CharField(max_length=34, required=False)
    beneficiary_sort_code = forms.CharField(max_length=12, required=False, validators=[digits_only])

    def changed_details(self):
        """Only the fields present in the request body are updated."""
        return {
            name: value
            for name, value in self.cleaned_data.items()
            if name in self.data
        }
