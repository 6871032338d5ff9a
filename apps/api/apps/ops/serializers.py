"""
Ops serializers.
"""
from rest_framework import serializers

from .models import FlowPriorityChoices, FlowStageChoices, FlowStageHistory, PatientFlowState


class FlowStageHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = FlowStageHistory
        fields = ['id', 'from_stage', 'to_stage', 'notes', 'changed_by', 'created_at']
        read_only_fields = fields


class PatientFlowStateSerializer(serializers.ModelSerializer):
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)
    chair_name = serializers.CharField(source='chair.name', read_only=True, default=None)
    history = FlowStageHistorySerializer(many=True, read_only=True)

    class Meta:
        model = PatientFlowState
        fields = [
            'id',
            'appointment',
            'patient',
            'patient_name',
            'provider',
            'chair',
            'chair_name',
            'stage',
            'priority',
            'scheduled_at',
            'checked_in_at',
            'called_at',
            'seated_at',
            'completed_at',
            'checked_out_at',
            'departed_at',
            'current_wait_started_at',
            'notes',
            'history',
            'updated_at',
        ]
        read_only_fields = fields


class FlowNotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class CallPatientSerializer(FlowNotesSerializer):
    chairId = serializers.UUIDField(required=False, allow_null=True)


class SeatPatientSerializer(FlowNotesSerializer):
    chairId = serializers.UUIDField()


class FlowPrioritySerializer(FlowNotesSerializer):
    priority = serializers.ChoiceField(choices=FlowPriorityChoices.choices)


class FlowTransitionSerializer(FlowNotesSerializer):
    toStage = serializers.ChoiceField(choices=FlowStageChoices.choices)
    chairId = serializers.UUIDField(required=False, allow_null=True)


class DayQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    providerId = serializers.UUIDField(required=False)


class WeekQuerySerializer(serializers.Serializer):
    weekStart = serializers.DateField(required=False)
    providerId = serializers.UUIDField(required=False)


class MonthQuerySerializer(serializers.Serializer):
    month = serializers.IntegerField(required=False, min_value=1, max_value=12)
    year = serializers.IntegerField(required=False, min_value=2020, max_value=2100)
    providerId = serializers.UUIDField(required=False)
