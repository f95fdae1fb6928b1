"""
Django admin configuration for scraper models.

Perfumes and brands are browsable and editable; queue entries can be
retried or reset from list actions; discovery jobs are read-only.
"""

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html

from scraper.models import Brand, DiscoveryJob, Perfume, QueueStatus, ScrapeQueueEntry


STATUS_COLORS = {
    "pending": "#ffc107",
    "processing": "#007bff",
    "running": "#007bff",
    "done": "#28a745",
    "completed": "#28a745",
    "failed": "#dc3545",
}


def _badge(value):
    color = STATUS_COLORS.get(value, "#6c757d")
    return format_html(
        '<span style="background-color: {}; color: white; '
        'padding: 2px 8px; border-radius: 4px;">{}</span>',
        color, value.title()
    )


@admin.register(Perfume)
class PerfumeAdmin(admin.ModelAdmin):
    """Admin interface for catalog perfumes."""

    list_display = [
        "name",
        "brand",
        "year",
        "gender",
        "rating",
        "complete_badge",
        "scraped_at",
    ]
    list_filter = ["gender", ("created_at", admin.DateFieldListFilter)]
    search_fields = ["name", "brand", "perfumer", "source_url"]
    readonly_fields = ["id", "source_url", "scraped_at", "created_at", "updated_at"]
    ordering = ["-created_at"]

    fieldsets = (
        ("Identity", {
            "fields": ("id", "name", "brand", "source_url"),
        }),
        ("Attributes", {
            "fields": (
                "year",
                "perfumer",
                "perfumer_image_url",
                "gender",
                "concentration",
                "description",
                "image_url",
            ),
        }),
        ("Composition", {
            "fields": ("notes", "accords"),
        }),
        ("Votes", {
            "fields": ("rating", "longevity", "sillage", "season_usage"),
            "classes": ("collapse",),
        }),
        ("Timing", {
            "fields": ("scraped_at", "created_at", "updated_at"),
        }),
    )

    def complete_badge(self, obj):
        if obj.is_incomplete:
            return format_html('<span style="color: #dc3545;">{}</span>', "Incomplete")
        return format_html('<span style="color: #28a745;">{}</span>', "Complete")
    complete_badge.short_description = "Data"


@admin.register(Brand)
class BrandAdmin(admin.ModelAdmin):
    list_display = ["name", "page_url", "has_logo", "updated_at"]
    search_fields = ["name"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["name"]

    def has_logo(self, obj):
        return bool(obj.logo_url)
    has_logo.boolean = True
    has_logo.short_description = "Logo"


@admin.register(ScrapeQueueEntry)
class ScrapeQueueEntryAdmin(admin.ModelAdmin):
    """
    Admin interface for the scrape queue.

    Entries are created through the API; the admin only moves them between
    statuses.
    """

    list_display = [
        "url_truncated",
        "status_badge",
        "retry_count",
        "force_rescrape",
        "updated_at",
    ]
    list_filter = ["status", "force_rescrape"]
    search_fields = ["url", "error_message"]
    readonly_fields = ["url", "retry_count", "error_message", "created_at", "updated_at"]
    ordering = ["created_at", "id"]
    actions = ["retry_entries", "mark_pending"]

    def url_truncated(self, obj):
        return obj.url[:80] + "..." if len(obj.url) > 80 else obj.url
    url_truncated.short_description = "URL"

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    @admin.action(description="Retry selected failed entries")
    def retry_entries(self, request, queryset):
        entries = list(queryset.filter(status=QueueStatus.FAILED))
        for entry in entries:
            entry.status = QueueStatus.PENDING
            entry.retry_count += 1
            entry.error_message = ""
            entry.updated_at = timezone.now()
            entry.save(update_fields=["status", "retry_count", "error_message", "updated_at"])
        self.message_user(request, f"Requeued {len(entries)} failed entries.")

    @admin.action(description="Reset selected entries to pending")
    def mark_pending(self, request, queryset):
        count = queryset.exclude(status=QueueStatus.PROCESSING).update(
            status=QueueStatus.PENDING, updated_at=timezone.now()
        )
        self.message_user(request, f"Reset {count} entries to pending.")

    def has_add_permission(self, request):
        return False


@admin.register(DiscoveryJob)
class DiscoveryJobAdmin(admin.ModelAdmin):
    """Read-only view of discovery job status and counts."""

    list_display = [
        "id_short",
        "kind",
        "status_badge",
        "urls_found",
        "urls_queued",
        "urls_skipped",
        "started_at",
        "duration_display",
    ]
    list_filter = ["kind", "status", ("created_at", admin.DateFieldListFilter)]
    search_fields = ["id"]
    readonly_fields = [
        "id",
        "kind",
        "params",
        "status",
        "urls_found",
        "urls_queued",
        "urls_skipped",
        "results_summary",
        "error_message",
        "created_at",
        "started_at",
        "completed_at",
    ]
    ordering = ["-created_at"]

    def id_short(self, obj):
        """Display shortened job ID."""
        return str(obj.id)[:8]
    id_short.short_description = "Job ID"

    def status_badge(self, obj):
        return _badge(obj.status)
    status_badge.short_description = "Status"
    status_badge.admin_order_field = "status"

    def duration_display(self, obj):
        seconds = obj.duration_seconds
        if seconds is None:
            return "-"
        if seconds < 60:
            return f"{seconds:.0f}s"
        return f"{seconds / 60:.1f}m"
    duration_display.short_description = "Duration"

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
