"""
Authz serializers for the current-user endpoint.
"""
from rest_framework import serializers
from apps.authz.models import User


class CurrentUserSerializer(serializers.ModelSerializer):
    """GET /api/auth/me/"""
    clinic = serializers.SerializerMethodField()
    roles = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'clinic', 'roles']
        read_only_fields = fields

    def get_clinic(self, obj):
        if not obj.clinic:
            return None
        return {'id': str(obj.clinic.id), 'name': obj.clinic.name, 'code': obj.clinic.code}

    def get_roles(self, obj):
        return sorted(obj.role_names)
