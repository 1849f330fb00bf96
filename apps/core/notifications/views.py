from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_GET, require_POST

from .models import Notification
from .services import mark_all_read, mark_notification_read, unread_count


def serialize_notification(notification):
    return {
        'id': notification.id,
        'title': notification.title,
        'message': notification.message,
        'type': notification.type,
        'link': notification.link,
        'is_read': notification.is_read,
        'created_at': notification.created_at.isoformat(),
    }


@login_required
@require_GET
def notification_list(request):
    notifications = Notification.objects.filter(user=request.user)
    if request.GET.get('unread') in {'1', 'true', 'yes'}:
        notifications = notifications.filter(is_read=False)

    return JsonResponse({
        'unread_count': unread_count(request.user),
        'notifications': [serialize_notification(row) for row in notifications[:100]],
    })


@login_required
@require_POST
def notification_mark_read(request, pk):
    notification = get_object_or_404(Notification, pk=pk, user=request.user)
    notification = mark_notification_read(notification=notification, user=request.user)
    return JsonResponse({'notification': serialize_notification(notification)})


@login_required
@require_POST
def notification_mark_all_read(request):
    updated = mark_all_read(request.user)
    return JsonResponse({'updated': updated})
