from django.core.exceptions import ObjectDoesNotExist, ValidationError


class NotFoundError(ObjectDoesNotExist):
    def __init__(self, model_name, pk):
        self.model_name = model_name
        self.pk = pk
        super().__init__(f"{model_name} {pk} does not exist.")


class PeriodLockedError(ValidationError):
    def __init__(self, period):
        self.period = period
        super().__init__(f"Contribution period {period} is finalized and can no longer be changed.")


class ConcurrencyConflictError(Exception):
    pass


class NotificationDeliveryError(Exception):
    pass


__all__ = [
    'ConcurrencyConflictError',
    'NotFoundError',
    'NotificationDeliveryError',
    'PeriodLockedError',
    'ValidationError',
]
