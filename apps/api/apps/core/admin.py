from django.contrib import admin
from .models import AuditLog, Clinic


@admin.register(Clinic)
class ClinicAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'timezone', 'is_active', 'created_at']
    list_filter = ['is_active']
    search_fields = ['name', 'code']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'clinic', 'action', 'entity_type', 'entity_id', 'actor_user']
    list_filter = ['action', 'entity_type', 'clinic']
    search_fields = ['entity_id']
    readonly_fields = [
        'id', 'created_at', 'clinic', 'actor_user', 'action',
        'entity_type', 'entity_id', 'metadata',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
