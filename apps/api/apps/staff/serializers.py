"""
Staff serializers.
"""
from rest_framework import serializers

from .models import StaffProfile


class StaffProfileSerializer(serializers.ModelSerializer):
    display_name = serializers.ReadOnlyField()

    class Meta:
        model = StaffProfile
        fields = [
            'id',
            'user',
            'employee_number',
            'first_name',
            'last_name',
            'display_name',
            'email',
            'phone',
            'title',
            'is_provider',
            'status',
            'hire_date',
            'termination_date',
            'termination_reason',
            'created_at',
            'updated_at',
        ]
        read_only_fields = [
            'id',
            'display_name',
            'termination_date',
            'termination_reason',
            'created_at',
            'updated_at',
        ]

    def validate_status(self, value):
        """Termination goes through /terminate/ so its checks always run."""
        if value == 'TERMINATED' and (self.instance is None or self.instance.status != value):
            raise serializers.ValidationError('Use the terminate endpoint to terminate staff')
        if self.instance is not None and self.instance.status == 'TERMINATED' and value != 'TERMINATED':
            raise serializers.ValidationError('Terminated staff cannot be reactivated')
        return value

    def validate_user(self, value):
        request = self.context.get('request')
        if value is not None and request is not None and value.clinic_id != request.user.clinic_id:
            raise serializers.ValidationError('User belongs to another clinic')
        return value


class TerminateStaffSerializer(serializers.Serializer):
    terminationDate = serializers.DateField()
    reason = serializers.CharField(allow_blank=True, required=False, default='')
