from django.contrib import admin

from .models import Appointment, AppointmentCancellation, AppointmentType


@admin.register(AppointmentType)
class AppointmentTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'code', 'clinic', 'default_duration', 'is_active']
    list_filter = ['clinic', 'is_active']
    search_fields = ['name', 'code']


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ['start_time', 'patient', 'provider', 'appointment_type', 'status', 'clinic']
    list_filter = ['clinic', 'status', 'source']
    search_fields = ['patient__first_name', 'patient__last_name']
    date_hierarchy = 'start_time'
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']
    raw_id_fields = ['patient', 'provider', 'chair', 'room']


@admin.register(AppointmentCancellation)
class AppointmentCancellationAdmin(admin.ModelAdmin):
    list_display = ['appointment', 'cancellation_type', 'is_late_cancel', 'recovery_status', 'cancelled_at']
    list_filter = ['clinic', 'cancellation_type', 'recovery_status']
    raw_id_fields = ['appointment', 'patient', 'rescheduled_appointment']
