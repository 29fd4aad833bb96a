from django.contrib import admin

from .models import Committee, CommitteeMembership, Discussion


class CommitteeMembershipInline(admin.TabularInline):
    model = CommitteeMembership
    fk_name = 'committee'
    extra = 0
    fields = ('member', 'role', 'status', 'can_post', 'can_invite', 'can_moderate')


@admin.register(Committee)
class CommitteeAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'category', 'chair', 'status', 'is_public', 'hubspot_sync_status')
    list_filter = ('category', 'status', 'is_public')
    search_fields = ('name', 'description', 'chair__email')
    inlines = [CommitteeMembershipInline]


@admin.register(Discussion)
class DiscussionAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'author', 'category', 'discussion_type', 'status', 'is_pinned', 'last_activity_at')
    list_filter = ('category', 'discussion_type', 'status', 'is_pinned')
    search_fields = ('title', 'content', 'author__email')
    list_editable = ('is_pinned',)
