from django.contrib import admin

from .models import PaymentDispute


@admin.register(PaymentDispute)
class PaymentDisputeAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'submitted_by', 'respondent', 'amount', 'status', 'mediator', 'response_deadline', 'hubspot_sync_status')
    list_filter = ('status', 'hubspot_sync_status')
    search_fields = ('reason', 'submitted_by__email', 'respondent__email', 'escrow__project__title')
    raw_id_fields = ('escrow', 'payment', 'resolution_payment')
