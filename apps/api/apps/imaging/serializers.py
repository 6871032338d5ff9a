"""
Imaging serializers.
"""
from rest_framework import serializers

from apps.booking.models import Appointment
from apps.patients.models import Patient

from .models import PatientImage


class PatientImageSerializer(serializers.ModelSerializer):
    patient = serializers.PrimaryKeyRelatedField(queryset=Patient.objects.all())
    appointment = serializers.PrimaryKeyRelatedField(
        queryset=Appointment.objects.all(),
        required=False,
        allow_null=True,
    )

    class Meta:
        model = PatientImage
        fields = [
            'id',
            'patient',
            'appointment',
            'category',
            'image',
            'thumbnail',
            'thumbnail_generated',
            'captured_at',
            'notes',
            'uploaded_by',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'thumbnail', 'thumbnail_generated', 'uploaded_by', 'created_at', 'updated_at']

    def _clinic(self):
        return self.context['clinic']

    def validate_patient(self, value):
        if value.clinic_id != self._clinic().id or value.deleted_at is not None:
            raise serializers.ValidationError('Patient not found')
        return value

    def validate(self, attrs):
        appointment = attrs.get('appointment')
        if appointment is not None:
            if appointment.clinic_id != self._clinic().id:
                raise serializers.ValidationError({'appointment': 'Appointment not found'})
            if appointment.patient_id != attrs['patient'].id:
                raise serializers.ValidationError(
                    {'appointment': 'Appointment belongs to a different patient'}
                )
        return attrs
