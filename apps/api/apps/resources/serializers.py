"""
Resources serializers.
"""
from rest_framework import serializers

from .models import OccupancyStatusChoices, Room, SterilizationCycle, TreatmentChair
from .services import get_current_occupancy


class RoomSerializer(serializers.ModelSerializer):
    class Meta:
        model = Room
        fields = ['id', 'name', 'code', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']


class TreatmentChairSerializer(serializers.ModelSerializer):
    room_name = serializers.CharField(source='room.name', read_only=True, default=None)
    occupancy = serializers.SerializerMethodField()

    class Meta:
        model = TreatmentChair
        fields = [
            'id',
            'name',
            'code',
            'room',
            'room_name',
            'is_active',
            'occupancy',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'room_name', 'occupancy', 'created_at', 'updated_at']

    def get_occupancy(self, obj):
        occupancy = get_current_occupancy(obj)
        if occupancy is None:
            return {'status': OccupancyStatusChoices.AVAILABLE}
        return {
            'status': occupancy.status,
            'appointmentId': str(occupancy.appointment_id) if occupancy.appointment_id else None,
            'occupiedAt': occupancy.occupied_at,
            'expectedFreeAt': occupancy.expected_free_at,
            'blockedUntil': occupancy.blocked_until,
            'blockReason': occupancy.block_reason or None,
            'updatedAt': occupancy.updated_at,
        }

    def validate_room(self, value):
        request = self.context.get('request')
        if value is not None and request is not None and value.clinic_id != request.user.clinic_id:
            raise serializers.ValidationError('Room not found')
        return value


class BlockChairSerializer(serializers.Serializer):
    BLOCK_TYPES = [
        OccupancyStatusChoices.BLOCKED,
        OccupancyStatusChoices.CLEANING,
        OccupancyStatusChoices.MAINTENANCE,
    ]

    reason = serializers.CharField(max_length=255)
    blockType = serializers.ChoiceField(choices=BLOCK_TYPES, default=OccupancyStatusChoices.BLOCKED)
    blockedUntil = serializers.DateTimeField(required=False, allow_null=True)
    durationMinutes = serializers.IntegerField(required=False, min_value=1, max_value=1440)


class SterilizationCycleSerializer(serializers.ModelSerializer):
    operator_email = serializers.EmailField(source='operator.email', read_only=True, default=None)

    class Meta:
        model = SterilizationCycle
        fields = [
            'id',
            'cycle_number',
            'cycle_type',
            'equipment_name',
            'package_type',
            'start_time',
            'end_time',
            'temperature',
            'pressure',
            'exposure_time',
            'status',
            'expiration_date',
            'operator',
            'operator_email',
            'notes',
            'created_at',
        ]
        read_only_fields = ['id', 'operator', 'operator_email', 'created_at']
        extra_kwargs = {'expiration_date': {'required': False}}

    def validate_cycle_number(self, value):
        request = self.context.get('request')
        if request is not None and SterilizationCycle.objects.filter(
            clinic_id=request.user.clinic_id, cycle_number=value
        ).exists():
            raise serializers.ValidationError('Cycle number already exists')
        return value

    def validate(self, attrs):
        end_time = attrs.get('end_time')
        if end_time and end_time < attrs['start_time']:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return attrs


class ParseLabelSerializer(serializers.Serializer):
    content = serializers.CharField(trim_whitespace=True)
