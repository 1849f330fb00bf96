from django.contrib.auth.signals import user_logged_in, user_logged_out, user_login_failed
from django.dispatch import receiver

from apps.core.users.audit import log_audit_event


def _session_event(action, request, user):
    log_audit_event(action=action, actor=user, target=user, details=f"Role={user.role}", request=request)


@receiver(user_logged_in)
def audit_login(sender, request, user, **kwargs):
    _session_event('user.login', request, user)


@receiver(user_logged_out)
def audit_logout(sender, request, user, **kwargs):
    # Logging out an anonymous session sends user=None.
    if user is not None:
        _session_event('user.logout', request, user)


@receiver(user_login_failed)
def audit_login_failure(sender, credentials, request=None, **kwargs):
    username = credentials.get('username', '')
    log_audit_event(action='user.login_failed', details=f"Username={username}", request=request)
