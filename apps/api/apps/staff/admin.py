from django.contrib import admin

from .models import StaffProfile


@admin.register(StaffProfile)
class StaffProfileAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'clinic', 'title', 'is_provider', 'status', 'hire_date']
    list_filter = ['clinic', 'status', 'is_provider']
    search_fields = ['first_name', 'last_name', 'email', 'employee_number']
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']
    autocomplete_fields = ['user']
