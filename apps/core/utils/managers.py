from django.core.exceptions import ValidationError
from django.db import models


class GroupQuerySet(models.QuerySet):
    def for_group(self, group):
        return self.filter(group=group)


class GroupManager(models.Manager):
    def get_queryset(self):
        return GroupQuerySet(self.model, using=self._db)

    def for_group(self, group):
        return self.get_queryset().for_group(group)


class FinancialRecordModel(models.Model):
    class Meta:
        abstract = True

    def delete(self, *args, **kwargs):
        raise ValidationError('Ledger history rows cannot be deleted individually.')
