from django.contrib import admin

from .models import ContributionGroup, GroupMembership


class GroupMembershipInline(admin.TabularInline):
    model = GroupMembership
    extra = 0


@admin.register(ContributionGroup)
class ContributionGroupAdmin(admin.ModelAdmin):
    list_display = ('name', 'contribution_amount', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('name', 'description')
    inlines = [GroupMembershipInline]


@admin.register(GroupMembership)
class GroupMembershipAdmin(admin.ModelAdmin):
    list_display = ('group', 'user', 'is_active', 'joined_at')
    list_filter = ('group', 'is_active')
    search_fields = ('user__username', 'user__full_name', 'group__name')
