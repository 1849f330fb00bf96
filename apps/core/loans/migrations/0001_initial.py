import django.db.models.deletion
import django.utils.timezone
from decimal import Decimal
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('contribution_groups', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Loan',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('principal_amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('outstanding_balance', models.DecimalField(decimal_places=2, max_digits=12)),
                ('monthly_repayment', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('status', models.CharField(choices=[('active', 'Active'), ('paid', 'Paid')], default='active', max_length=10)),
                ('issued_date', models.DateField(default=django.utils.timezone.localdate)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('group', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to='contribution_groups.contributiongroup')),
                ('issued_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='issued_loans', to=settings.AUTH_USER_MODEL)),
                ('member', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='loans', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-issued_date', '-id'],
                'indexes': [
                    models.Index(fields=['member', 'status'], name='loan_member_status_idx'),
                    models.Index(fields=['group', 'status'], name='loan_group_status_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('principal_amount__gt', 0)), name='loan_principal_positive'),
                    models.CheckConstraint(condition=models.Q(('outstanding_balance__gte', 0), ('outstanding_balance__lte', models.F('principal_amount'))), name='loan_balance_within_principal'),
                    models.CheckConstraint(condition=models.Q(models.Q(('outstanding_balance', 0), ('status', 'paid')), models.Q(('outstanding_balance__gt', 0), ('status', 'active')), _connector='OR'), name='loan_status_matches_balance'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LoanRepayment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('repayment_type', models.CharField(choices=[('manual', 'Manual Payment'), ('auto_deduction', 'Auto Deduction (from payout)'), ('partial', 'Partial Payment'), ('bank_transfer', 'Bank Transfer')], default='manual', max_length=20)),
                ('notes', models.TextField(blank=True)),
                ('balance_after', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('repayment_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('loan', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='repayments', to='loans.loan')),
                ('recorded_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='recorded_loan_repayments', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['repayment_date', 'id'],
                'indexes': [
                    models.Index(fields=['loan', 'repayment_date'], name='loan_repayment_loan_date_idx'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(('amount__gt', 0)), name='loan_repayment_amount_positive'),
                ],
            },
        ),
    ]
