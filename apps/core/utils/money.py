from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db.models import Sum

ZERO = Decimal('0.00')
# Amount columns are DecimalField(max_digits=12, decimal_places=2).
MAX_AMOUNT = Decimal(10) ** 10


def to_decimal(value) -> Decimal:
    return Decimal(str(value or '0'))


def quantize(value) -> Decimal:
    return to_decimal(value).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def sum_amount(queryset, field_name='amount') -> Decimal:
    value = queryset.aggregate(total=Sum(field_name)).get('total')
    return quantize(value)


def positive_amount(value, label='Amount') -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f'{label} must be a number.')
    try:
        amount = quantize(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f'{label} must be a number.')
    if not amount.is_finite() or amount <= 0:
        raise ValidationError(f'{label} must be greater than zero.')
    if amount >= MAX_AMOUNT:
        raise ValidationError(f'{label} must be less than {MAX_AMOUNT:,}.')
    return amount


def format_money(value) -> str:
    symbol = getattr(settings, 'LEDGER_CURRENCY_SYMBOL', '£')
    return f"{symbol}{quantize(value):,.2f}"
