from django.contrib import admin

from .models import Project


@admin.register(Project)
class ProjectAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'owner', 'contractor', 'budget', 'status', 'created_at')
    list_filter = ('status',)
    search_fields = ('title', 'owner__email', 'contractor__email', 'location')
