from django.contrib import admin

from .models import Loan, LoanRepayment


class LoanRepaymentInline(admin.TabularInline):
    model = LoanRepayment
    extra = 0
    can_delete = False
    readonly_fields = ('amount', 'repayment_type', 'notes', 'balance_after', 'repayment_date', 'recorded_by')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Loan)
class LoanAdmin(admin.ModelAdmin):
    list_display = ('id', 'member', 'group', 'principal_amount', 'outstanding_balance', 'status', 'issued_date')
    list_filter = ('status', 'group')
    search_fields = ('member__username', 'member__full_name')
    readonly_fields = ('outstanding_balance', 'status')
    inlines = [LoanRepaymentInline]

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(LoanRepayment)
class LoanRepaymentAdmin(admin.ModelAdmin):
    list_display = ('loan', 'amount', 'repayment_type', 'balance_after', 'repayment_date')
    list_filter = ('repayment_type',)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
