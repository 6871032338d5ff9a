from django.contrib import admin

from .models import PatientImage


@admin.register(PatientImage)
class PatientImageAdmin(admin.ModelAdmin):
    list_display = ['patient', 'category', 'captured_at', 'thumbnail_generated', 'clinic']
    list_filter = ['clinic', 'category', 'thumbnail_generated']
    search_fields = ['patient__first_name', 'patient__last_name']
    readonly_fields = ['id', 'thumbnail', 'thumbnail_generated', 'created_at', 'updated_at', 'deleted_at']
    raw_id_fields = ['patient', 'appointment']
