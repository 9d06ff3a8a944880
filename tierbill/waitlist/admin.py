from django.contrib import admin

from tierbill.waitlist.models import WaitlistEntry


@admin.register(WaitlistEntry)
class WaitlistEntryAdmin(admin.ModelAdmin):
    """Admin for waitlist entries."""

    list_display = ["email", "waitlist_position", "created"]
    ordering = ["waitlist_position"]
    search_fields = ["email"]
    readonly_fields = ["created", "modified"]
