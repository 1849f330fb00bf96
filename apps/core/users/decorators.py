from functools import wraps

from django.http import JsonResponse


def role_required(*roles):
    """
    Restrict a JSON view to users holding one of ``roles``.

    Anonymous callers get 401 and authenticated users outside the
    allowed roles get 403, both with the roles the action needs.
    """
    allowed = frozenset(roles)

    def decorator(view_func):
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            user = request.user
            if not user.is_authenticated:
                return JsonResponse({'error': 'Authentication required.'}, status=401)

            if getattr(user, 'role', None) not in allowed:
                return JsonResponse(
                    {
                        'error': 'You do not have access to this action.',
                        'required_roles': sorted(allowed),
                    },
                    status=403,
                )

            return view_func(request, *args, **kwargs)

        return wrapper

    return decorator


admin_required = role_required('admin')
