from .errors import NotFoundError


def get_or_not_found(model, pk, queryset=None):
    queryset = queryset if queryset is not None else model.objects.all()
    if pk in (None, ''):
        raise NotFoundError(model.__name__, pk)
    try:
        return queryset.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError(model.__name__, pk)
