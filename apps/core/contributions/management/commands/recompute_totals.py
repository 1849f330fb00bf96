from django.core.management.base import BaseCommand, CommandError

from apps.core.contributions.services import recompute_group_totals
from apps.core.groups.services import get_group
from apps.core.utils.errors import NotFoundError


class Command(BaseCommand):
    help = 'Rebuilds total_collected for every contribution period from its paid payments.'

    def add_arguments(self, parser):
        parser.add_argument('--group', type=int, help='Only recompute periods of this group id.')

    def handle(self, *args, **options):
        group = None
        if options.get('group') is not None:
            try:
                group = get_group(options['group'])
            except NotFoundError as exc:
                raise CommandError(str(exc))

        recomputed = recompute_group_totals(group=group)
        self.stdout.write(self.style.SUCCESS(f'Recomputed totals for {recomputed} period(s).'))
