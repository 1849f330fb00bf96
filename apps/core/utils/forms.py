from django import forms


class ConfirmationForm(forms.Form):
    confirm = forms.CharField()

    def clean_confirm(self):
        value = (self.cleaned_data.get('confirm') or '').strip().lower()
        if value not in {'yes', 'true', '1'}:
            raise forms.ValidationError('Destructive actions must be confirmed.')
        return value
