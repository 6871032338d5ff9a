from django.contrib import admin

from .models import LabInspection, LabOrder, LabOrderItem, LabOrderStatusLog, LabVendor, RemakeRequest


@admin.register(LabVendor)
class LabVendorAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'clinic', 'is_active']
    list_filter = ['clinic', 'is_active']
    search_fields = ['name', 'code']


class LabOrderItemInline(admin.TabularInline):
    model = LabOrderItem
    extra = 0


class LabOrderStatusLogInline(admin.TabularInline):
    model = LabOrderStatusLog
    extra = 0
    can_delete = False
    readonly_fields = ['from_status', 'to_status', 'notes', 'source', 'changed_by', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'patient', 'vendor', 'status', 'priority', 'order_date', 'clinic']
    list_filter = ['clinic', 'status', 'priority', 'is_rush']
    search_fields = ['order_number', 'patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'order_number', 'status', 'submitted_at', 'total_cost', 'created_at', 'updated_at', 'deleted_at']
    raw_id_fields = ['patient', 'vendor']
    inlines = [LabOrderItemInline, LabOrderStatusLogInline]


@admin.register(RemakeRequest)
class RemakeRequestAdmin(admin.ModelAdmin):
    list_display = ['remake_number', 'original_order', 'reason', 'status', 'requires_approval', 'approved_at']
    list_filter = ['clinic', 'status', 'reason']
    raw_id_fields = ['original_order', 'original_item', 'new_order']


@admin.register(LabInspection)
class LabInspectionAdmin(admin.ModelAdmin):
    list_display = ['order', 'remake', 'result', 'inspected_by', 'inspected_at']
    list_filter = ['clinic', 'result']
    raw_id_fields = ['order', 'remake']
