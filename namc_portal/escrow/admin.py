from django.contrib import admin

from .models import ChangeOrder, CashFlowProjection, EscrowPayment, PaymentMilestone, ProjectEscrow, TaskPayment


class EscrowPaymentInline(admin.TabularInline):
    model = EscrowPayment
    extra = 0
    can_delete = False
    readonly_fields = ('payment_type', 'amount', 'recipient', 'payment_method', 'provider', 'transaction_reference', 'status', 'created_at')
    fields = readonly_fields


@admin.register(ProjectEscrow)
class ProjectEscrowAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'total_project_value', 'escrow_balance', 'total_paid', 'retention_amount', 'status', 'is_locked', 'hubspot_sync_status')
    list_filter = ('status', 'is_locked', 'payment_provider', 'hubspot_sync_status')
    search_fields = ('project__title', 'project__owner__email', 'project__contractor__email')
    readonly_fields = ('escrow_balance', 'total_deposited', 'total_paid', 'last_payment_date', 'last_payment_amount', 'processor_account_id')
    inlines = [EscrowPaymentInline]


@admin.register(TaskPayment)
class TaskPaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'task_name', 'escrow', 'contractor', 'payment_amount', 'status', 'approval_required', 'paid_at')
    list_filter = ('status', 'approval_required', 'photos_required')
    search_fields = ('task_name', 'task_reference', 'contractor__email')


@admin.register(PaymentMilestone)
class PaymentMilestoneAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'escrow', 'payment_percentage', 'payment_amount', 'due_date', 'status')
    list_filter = ('status',)
    search_fields = ('name', 'contractor__email')


@admin.register(EscrowPayment)
class EscrowPaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'payment_type', 'amount', 'recipient', 'payment_method', 'transaction_reference', 'created_at')
    list_filter = ('payment_type', 'payment_method', 'status')
    search_fields = ('transaction_reference', 'recipient__email')

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ChangeOrder)
class ChangeOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'change_order_number', 'amount_change', 'schedule_impact_days', 'new_project_value', 'created_at')
    search_fields = ('change_order_number', 'description')


admin.site.register(CashFlowProjection)
