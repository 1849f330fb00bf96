import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone
from faker import Faker

from apps.core.contributions.models import ContributionPayment, MonthlyContribution
from apps.core.contributions.services import create_period, record_payment
from apps.core.groups.models import ContributionGroup, GroupMembership
from apps.core.loans.services import issue_loan, record_repayment


class Command(BaseCommand):
    help = 'Seeds the database with a demo contribution group.'

    def add_arguments(self, parser):
        parser.add_argument('--members', type=int, default=8)

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding database...')

        fake = Faker('en_GB')
        User = get_user_model()

        if not User.objects.filter(username='ledgeradmin').exists():
            User.objects.create_superuser('ledgeradmin', 'ledgeradmin@example.com', 'password')
            self.stdout.write(self.style.SUCCESS('Successfully created ledgeradmin user.'))
        admin = User.objects.get(username='ledgeradmin')

        group, created = ContributionGroup.objects.get_or_create(
            name='Demo Savings Circle',
            defaults={
                'description': fake.catch_phrase(),
                'contribution_amount': Decimal('100.00'),
            }
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f'Successfully created group: {group.name}'))

        for _ in range(options['members']):
            first_name = fake.first_name()
            last_name = fake.last_name()
            member, created = User.objects.get_or_create(
                username=fake.unique.user_name(),
                defaults={
                    'role': User.ROLE_CONTRIBUTOR,
                    'full_name': f'{first_name} {last_name}',
                    'email': fake.email(),
                    'phone': fake.phone_number()[:20],
                }
            )
            if created:
                member.set_password('password')
                member.save()
                GroupMembership.objects.get_or_create(group=group, user=member)
                self.stdout.write(self.style.SUCCESS(f'Successfully created member: {member.display_name}'))

        members = [membership.user for membership in group.memberships.select_related('user')]
        if not members:
            self.stdout.write(self.style.WARNING('No members to seed payments for.'))
            return

        today = timezone.localdate()
        if not MonthlyContribution.objects.filter(group=group, month=today.month, year=today.year).exists():
            beneficiary = random.choice(members)
            period = create_period(
                group_id=group.pk,
                month=today.month,
                year=today.year,
                beneficiary_id=beneficiary.pk,
                beneficiary_bank_name=fake.company(),
                beneficiary_account_name=beneficiary.display_name,
                beneficiary_account_number=fake.numerify('########'),
                beneficiary_sort_code=fake.numerify('######'),
                created_by=admin,
            )
            self.stdout.write(self.style.SUCCESS(f'Successfully created period: {period}'))

            statuses = [value for value, _ in ContributionPayment.STATUS_CHOICES]
            for member in members:
                record_payment(
                    period_id=period.pk,
                    member_id=member.pk,
                    amount=period.per_member_amount,
                    status=random.choice(statuses),
                    recorded_by=admin,
                )
            period.refresh_from_db()
            self.stdout.write(self.style.SUCCESS(
                f'  - Recorded {len(members)} payments, collected {period.total_collected}'
            ))

        borrower = random.choice(members)
        if not borrower.loans.exists():
            loan = issue_loan(
                member_id=borrower.pk,
                group_id=group.pk,
                principal=Decimal('500.00'),
                monthly_repayment=Decimal('50.00'),
                issued_by=admin,
            )
            record_repayment(loan_id=loan.pk, amount=Decimal('50.00'), recorded_by=admin)
            self.stdout.write(self.style.SUCCESS(f'Successfully created loan for {borrower.display_name}'))

        self.stdout.write(self.style.SUCCESS('Database seeding complete!'))
