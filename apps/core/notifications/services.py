import logging

from django.conf import settings
from django.db import DatabaseError, transaction

from apps.core.utils.errors import NotificationDeliveryError

from .models import Notification

logger = logging.getLogger(__name__)


def _default_link():
    return getattr(settings, 'LEDGER_NOTIFICATION_LINK', '/dashboard/contributor/')


def _create_notification(*, user_id, title, message, n_type, link):
    return Notification.objects.create(
        user_id=user_id,
        title=title[:150],
        message=message,
        type=n_type,
        link=(link or '')[:255],
    )


def _store_notification(*, user_id, **fields):
    # Deferred foreign keys are only checked when the block commits.
    try:
        with transaction.atomic():
            return _create_notification(user_id=user_id, **fields)
    except DatabaseError as exc:
        raise NotificationDeliveryError(f"Notification for user {user_id} could not be stored.") from exc


def deliver_notification(*, user_id, title, message, n_type=Notification.TYPE_PAYMENT, link=None):
    """
    Append an unread notification row for ``user_id``.

    Delivery problems are logged and swallowed; callers get ``None`` back.
    """
    try:
        notification = _store_notification(
            user_id=user_id,
            title=title,
            message=message,
            n_type=n_type,
            link=_default_link() if link is None else link,
        )
    except NotificationDeliveryError:
        logger.warning('Dropping notification "%s" for user %s', title, user_id, exc_info=True)
        return None

    logger.debug('Notification %s delivered to user %s', notification.pk, user_id)
    return notification


def notify(*, user_id, title, message, n_type=Notification.TYPE_PAYMENT, link=None):
    """
    Queue a member notification behind the current transaction.

    The financial change commits first; the notification row is written
    only once that commit succeeds and never rolls it back.
    """
    if not user_id:
        return

    transaction.on_commit(
        lambda: deliver_notification(
            user_id=user_id,
            title=title,
            message=message,
            n_type=n_type,
            link=link,
        ),
        robust=True,
    )


def notify_many(*, user_ids, title, message, n_type=Notification.TYPE_ANNOUNCEMENT, link=None):
    for user_id in dict.fromkeys(user_ids):
        notify(user_id=user_id, title=title, message=message, n_type=n_type, link=link)


def unread_count(user) -> int:
    return Notification.objects.filter(user=user, is_read=False).count()


def mark_notification_read(*, notification, user):
    if notification.user_id != user.pk:
        return notification
    if not notification.is_read:
        notification.is_read = True
        notification.save(update_fields=['is_read'])
    return notification


def mark_all_read(user) -> int:
    return Notification.objects.filter(user=user, is_read=False).update(is_read=True)
