from django.contrib import admin

from .models import ContributionPayment, MonthlyContribution, PaymentEvent


@admin.register(MonthlyContribution)
class MonthlyContributionAdmin(admin.ModelAdmin):
    list_display = (
        'group',
        'month',
        'year',
        'beneficiary',
        'per_member_amount',
        'total_expected',
        'total_collected',
        'is_finalized',
    )
    list_filter = ('group', 'year', 'is_finalized')
    readonly_fields = ('total_expected', 'total_collected', 'is_finalized', 'finalized_at', 'finalized_by')


@admin.register(ContributionPayment)
class ContributionPaymentAdmin(admin.ModelAdmin):
    list_display = ('period', 'member', 'amount', 'status', 'payment_date')
    list_filter = ('status', 'period__group')
    search_fields = ('member__username', 'member__full_name')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentEvent)
class PaymentEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'event_type', 'payment_id_snapshot', 'period', 'member', 'amount', 'status', 'actor')
    list_filter = ('event_type', 'status')

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
