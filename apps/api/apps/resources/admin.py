from django.contrib import admin

from .models import ResourceOccupancy, Room, SterilizationCycle, TreatmentChair


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'clinic', 'is_active']
    list_filter = ['clinic', 'is_active']
    search_fields = ['name', 'code']


@admin.register(TreatmentChair)
class TreatmentChairAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'clinic', 'room', 'is_active']
    list_filter = ['clinic', 'is_active']
    search_fields = ['name', 'code']
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']


@admin.register(ResourceOccupancy)
class ResourceOccupancyAdmin(admin.ModelAdmin):
    list_display = ['chair', 'status', 'occupied_at', 'blocked_until', 'updated_at']
    list_filter = ['clinic', 'status']


@admin.register(SterilizationCycle)
class SterilizationCycleAdmin(admin.ModelAdmin):
    list_display = ['cycle_number', 'clinic', 'cycle_type', 'status', 'start_time', 'expiration_date']
    list_filter = ['clinic', 'cycle_type', 'status']
    search_fields = ['cycle_number', 'equipment_name']
    readonly_fields = ['id', 'created_at', 'updated_at']
