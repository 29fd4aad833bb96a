from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'recipient', 'notification_type', 'priority', 'title', 'read', 'sent_at')
    list_filter = ('notification_type', 'priority', 'read')
    search_fields = ('recipient__email', 'title', 'message')
