import django.core.validators
import django.db.models.deletion
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


STATUS_CHOICES = [
    ('pending', 'Pending'),
    ('paid', 'Paid'),
    ('partial', 'Partial'),
    ('overdue', 'Overdue'),
    ('rejected', 'Rejected'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('contribution_groups', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='MonthlyContribution',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('month', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(12)])),
                ('year', models.PositiveSmallIntegerField(validators=[django.core.validators.MinValueValidator(2000), django.core.validators.MaxValueValidator(2100)])),
                ('beneficiary_bank_name', models.CharField(blank=True, max_length=120)),
                ('beneficiary_account_name', models.CharField(blank=True, max_length=120)),
                ('beneficiary_account_number', models.CharField(blank=True, max_length=34)),
                ('beneficiary_sort_code', models.CharField(blank=True, max_length=12)),
                ('per_member_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('total_expected', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('total_collected', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('is_finalized', models.BooleanField(default=False)),
                ('finalized_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('beneficiary', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='beneficiary_periods', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_periods', to=settings.AUTH_USER_MODEL)),
                ('finalized_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='finalized_periods', to=settings.AUTH_USER_MODEL)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='periods', to='contribution_groups.contributiongroup')),
            ],
            options={
                'ordering': ['-year', '-month', 'group__name'],
                'indexes': [
                    models.Index(fields=['group', 'year', 'month'], name='period_group_year_month_idx'),
                    models.Index(fields=['is_finalized'], name='period_finalized_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('group', 'month', 'year'), name='unique_period_per_group_month'),
                    models.CheckConstraint(condition=models.Q(('month__gte', 1), ('month__lte', 12)), name='period_month_in_range'),
                    models.CheckConstraint(condition=models.Q(('total_collected__gte', 0), ('total_expected__gte', 0)), name='period_totals_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ContributionPayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='pending', max_length=20)),
                ('payment_date', models.DateTimeField()),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='contribution_payments', to=settings.AUTH_USER_MODEL)),
                ('period', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='contributions.monthlycontribution')),
                ('recorded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recorded_contribution_payments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-payment_date', '-id'],
                'indexes': [
                    models.Index(fields=['period', 'status'], name='payment_period_status_idx'),
                    models.Index(fields=['member', '-payment_date'], name='payment_member_date_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='contribution_payment_amount_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='PaymentEvent',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event_type', models.CharField(choices=[('created', 'Created'), ('updated', 'Updated'), ('deleted', 'Deleted')], max_length=10)),
                ('payment_id_snapshot', models.BigIntegerField(db_index=True)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('status', models.CharField(choices=STATUS_CHOICES, max_length=20)),
                ('previous_amount', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('previous_status', models.CharField(blank=True, choices=STATUS_CHOICES, max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='+', to=settings.AUTH_USER_MODEL)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payment_events', to=settings.AUTH_USER_MODEL)),
                ('period', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payment_events', to='contributions.monthlycontribution')),
                ('previous_member', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='+', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [
                    models.Index(fields=['period', 'created_at'], name='payment_event_period_idx'),
                ],
            },
        ),
    ]
