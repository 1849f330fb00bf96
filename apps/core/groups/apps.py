from django.apps import AppConfig


class GroupsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core.groups'
    label = 'contribution_groups'
    verbose_name = 'Contribution groups'
