from django.contrib import admin
from django.contrib.auth.admin import UserAdmin

from .models import Member


@admin.register(Member)
class MemberAdmin(UserAdmin):
    ordering = ('email',)
    list_display = ('id', 'email', 'first_name', 'last_name', 'member_type', 'company', 'is_active', 'hubspot_sync_status')
    list_filter = ('member_type', 'is_active', 'is_staff', 'hubspot_sync_status')
    search_fields = ('email', 'first_name', 'last_name', 'company')
    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Profile', {'fields': ('first_name', 'last_name', 'member_type', 'company', 'phone_number', 'location', 'website', 'country')}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
        ('HubSpot', {'fields': ('hubspot_object_id', 'hubspot_sync_status', 'hubspot_last_sync', 'hubspot_sync_error')}),
        ('Dates', {'fields': ('last_login', 'deleted_at')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'member_type', 'password1', 'password2'),
        }),
    )
