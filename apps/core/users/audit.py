import logging

from django.db import transaction

from apps.core.users.models import AuditLog

logger = logging.getLogger(__name__)


def _extract_ip(request):
    forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR', '')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def _resolve_actor(actor):
    if actor is None or not getattr(actor, 'is_authenticated', False):
        return None
    return actor


def log_audit_event(action, actor=None, target=None, details='', request=None):
    """
    Record an audit row for a ledger action.

    The acting user is passed explicitly; ``request`` only contributes
    method, path and client address when the call comes from a view.
    """
    try:
        target_model = ''
        target_id = ''

        if target is not None:
            target_model = target.__class__.__name__
            target_id = str(getattr(target, 'pk', '') or '')

        if actor is None and request is not None:
            actor = getattr(request, 'user', None)

        with transaction.atomic():
            return AuditLog.objects.create(
                user=_resolve_actor(actor),
                action=action,
                target_model=target_model,
                target_id=target_id,
                details=details,
                method=(request.method or '') if request is not None else '',
                path=(request.path or '')[:255] if request is not None else '',
                ip_address=_extract_ip(request) if request is not None else None,
            )
    except Exception:
        # Audit logging must never break ledger actions.
        logger.warning('Audit event %s could not be recorded', action, exc_info=True)
        return None
