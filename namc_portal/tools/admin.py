from django.contrib import admin

from .models import Tool, ToolMaintenance, ToolReservation


class ToolMaintenanceInline(admin.TabularInline):
    model = ToolMaintenance
    extra = 0
    fields = ('maintenance_type', 'status', 'priority', 'scheduled_date', 'completed_date', 'cost', 'performed_by')


@admin.register(Tool)
class ToolAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'category', 'daily_rate', 'condition', 'location', 'is_available', 'hubspot_sync_status')
    list_filter = ('category', 'condition', 'is_available', 'requires_training')
    search_fields = ('name', 'serial_number', 'manufacturer', 'model_number')
    inlines = [ToolMaintenanceInline]


@admin.register(ToolReservation)
class ToolReservationAdmin(admin.ModelAdmin):
    list_display = ('id', 'tool', 'member', 'start_date', 'end_date', 'status', 'total_cost', 'late_fees')
    list_filter = ('status', 'hubspot_sync_status')
    search_fields = ('tool__name', 'member__email')
    readonly_fields = ('total_cost', 'late_fees', 'checked_out_at', 'returned_at')


@admin.register(ToolMaintenance)
class ToolMaintenanceAdmin(admin.ModelAdmin):
    list_display = ('id', 'tool', 'maintenance_type', 'priority', 'status', 'scheduled_date', 'completed_date', 'cost')
    list_filter = ('maintenance_type', 'priority', 'status')
    search_fields = ('tool__name', 'performed_by')
