from django.apps import apps
from django.test.runner import DiscoverRunner


LEDGER_APP_PREFIX = 'apps.core.'


class InstalledAppsOnlyDiscoverRunner(DiscoverRunner):
    """Run the ledger apps' tests when no labels are given on the command line."""

    def build_suite(self, test_labels=None, **kwargs):
        if not test_labels:
            test_labels = [
                app_config.name
                for app_config in apps.get_app_configs()
                if app_config.name.startswith(LEDGER_APP_PREFIX)
            ]
        return super().build_suite(test_labels, **kwargs)
