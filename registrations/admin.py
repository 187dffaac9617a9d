"""
Django admin configuration for registrations app.
"""
from django.contrib import admin
from registrations.models import RegistrationRecord, WebhookEvent


@admin.register(RegistrationRecord)
class RegistrationRecordAdmin(admin.ModelAdmin):
    """Admin interface for RegistrationRecord model."""

    list_display = ('tenant_id', 'organization_name', 'status', 'brand_id', 'campaign_id',
                    'campaign_suspended', 'next_check_at')
    list_filter = ('status', 'campaign_suspended', 'using_elevated_delivery_profile')
    search_fields = ('tenant_id', 'organization_name', 'brand_id', 'campaign_id', 'phone_number')
    readonly_fields = ('tenant_id', 'brand_id', 'tcr_brand_id', 'campaign_id', 'registered_at',
                       'approved_at', 'version', 'created_at', 'updated_at')

    fieldsets = (
        ('Tenant', {
            'fields': ('tenant_id', 'organization_name', 'phone_number')
        }),
        ('Status', {
            'fields': ('status', 'rejection_reason', 'next_check_at')
        }),
        ('Registry', {
            'fields': ('brand_id', 'tcr_brand_id', 'campaign_id', 'campaign_status')
        }),
        ('Campaign health', {
            'fields': ('campaign_suspended', 'campaign_suspended_at', 'campaign_suspended_reason',
                       'number_assigned_at'),
            'classes': ('collapse',)
        }),
        ('Delivery', {
            'fields': ('using_elevated_delivery_profile', 'delivery_rate')
        }),
        ('Timestamps', {
            'fields': ('registered_at', 'approved_at', 'created_at', 'updated_at', 'version'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        """Records are created by the brand registration workflow only."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Compliance history is never deleted through admin."""
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Admin interface for WebhookEvent model."""

    list_display = ('id', 'kind', 'event_type', 'status', 'endpoint', 'attempts', 'received_at')
    list_filter = ('status', 'kind', 'endpoint', 'received_at')
    search_fields = ('id', 'dedup_key', 'event_type', 'error_message')
    readonly_fields = ('dedup_key', 'kind', 'event_type', 'raw_payload', 'source_headers', 'endpoint',
                       'status', 'attempts', 'error_message', 'received_at', 'processed_at')

    fieldsets = (
        ('Event', {
            'fields': ('dedup_key', 'kind', 'event_type', 'endpoint')
        }),
        ('Processing', {
            'fields': ('status', 'attempts', 'error_message', 'received_at', 'processed_at')
        }),
        ('Payload', {
            'fields': ('raw_payload', 'source_headers'),
            'classes': ('collapse',)
        }),
    )

    def has_add_permission(self, request):
        """Disable manual event creation through admin."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Disable event deletion through admin."""
        return False
