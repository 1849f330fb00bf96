import logging
from decimal import Decimal
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import JsonResponse

from .errors import ConcurrencyConflictError, NotFoundError, PeriodLockedError

logger = logging.getLogger(__name__)


def _messages(exc):
    if hasattr(exc, 'message_dict'):
        return exc.message_dict
    if hasattr(exc, 'messages'):
        return exc.messages
    return [str(exc)]


def error_response(exc):
    if isinstance(exc, PeriodLockedError):
        return JsonResponse({'error': 'period_locked', 'messages': _messages(exc)}, status=409)
    if isinstance(exc, ValidationError):
        return JsonResponse({'error': 'validation', 'messages': _messages(exc)}, status=400)
    if isinstance(exc, NotFoundError):
        return JsonResponse({'error': 'not_found', 'messages': [str(exc)]}, status=404)
    if isinstance(exc, ConcurrencyConflictError):
        return JsonResponse({'error': 'conflict', 'messages': [str(exc)]}, status=409)
    raise exc


def form_error_response(form):
    return JsonResponse({'error': 'validation', 'messages': form.errors.get_json_data()}, status=400)


def handles_ledger_errors(view_func):
    """Translate engine errors raised by a view into JSON error responses."""

    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        try:
            return view_func(request, *args, **kwargs)
        except (ValidationError, NotFoundError, ConcurrencyConflictError) as exc:
            logger.info('%s rejected: %s', view_func.__name__, exc)
            return error_response(exc)

    return wrapper


def money(value):
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal('0.01')))
