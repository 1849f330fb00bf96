from django import forms


class DashboardPeriodForm(forms.Form):
    month = forms.IntegerField(min_value=1, max_value=12, required=False)
    year = forms.IntegerField(min_value=2000, max_value=2100, required=False)
