"""
Patient serializers.
"""
from rest_framework import serializers

from .models import Patient


class PatientSerializer(serializers.ModelSerializer):
    """
    Patient serializer with all fields.
    """
    full_name = serializers.ReadOnlyField()
    age = serializers.ReadOnlyField()

    class Meta:
        model = Patient
        fields = [
            'id',
            'patient_number',
            'first_name',
            'last_name',
            'full_name',
            'date_of_birth',
            'age',
            'phone',
            'email',
            'notes',
            'is_active',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'created_at', 'updated_at', 'full_name', 'age']


class PatientListSerializer(serializers.ModelSerializer):
    """
    Lightweight serializer for patient lists.
    """
    full_name = serializers.ReadOnlyField()

    class Meta:
        model = Patient
        fields = [
            'id',
            'patient_number',
            'first_name',
            'last_name',
            'full_name',
            'date_of_birth',
            'phone',
            'email',
            'is_active',
        ]
        read_only_fields = fields
