from django.contrib import admin

from .models import Patient


class DeletedFilter(admin.SimpleListFilter):
    title = 'deleted'
    parameter_name = 'deleted'

    def lookups(self, request, model_admin):
        return [('no', 'Live'), ('yes', 'Deleted')]

    def queryset(self, request, queryset):
        if self.value() == 'no':
            return queryset.alive()
        if self.value() == 'yes':
            return queryset.dead()
        return queryset


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['last_name', 'first_name', 'clinic', 'patient_number', 'phone', 'is_active', 'deleted_at']
    list_filter = ['clinic', 'is_active', DeletedFilter]
    search_fields = ['last_name', 'first_name', 'phone', 'email', 'patient_number']
    readonly_fields = ['id', 'created_at', 'updated_at', 'deleted_at']
    actions = ['restore']

    @admin.action(description='Restore selected soft-deleted patients')
    def restore(self, request, queryset):
        restored = queryset.dead().update(deleted_at=None)
        self.message_user(request, f'{restored} patient(s) restored')
