from django.contrib import admin

from .models import FlowStageHistory, PatientFlowState


class FlowStageHistoryInline(admin.TabularInline):
    model = FlowStageHistory
    extra = 0
    readonly_fields = ['from_stage', 'to_stage', 'notes', 'changed_by', 'created_at']
    can_delete = False


@admin.register(PatientFlowState)
class PatientFlowStateAdmin(admin.ModelAdmin):
    list_display = ['patient', 'stage', 'priority', 'scheduled_at', 'chair', 'clinic']
    list_filter = ['clinic', 'stage', 'priority']
    raw_id_fields = ['appointment', 'patient', 'provider', 'chair']
    inlines = [FlowStageHistoryInline]
