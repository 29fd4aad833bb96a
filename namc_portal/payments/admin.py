from django.contrib import admin
from .models import PayoutMethod


@admin.register(PayoutMethod)
class PayoutMethodAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'provider', 'stripe_account_id', 'manual_method', 'payouts_enabled', 'is_default', 'is_active', 'created_at')
    list_filter = ('provider', 'payouts_enabled', 'is_default', 'is_active')
    search_fields = ('user__email', 'stripe_account_id', 'bank_name')
