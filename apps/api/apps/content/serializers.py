"""
Content serializers.
"""
from django.utils.text import slugify
from rest_framework import serializers

from .models import ContentArticle, ContentDelivery, DeliveryMethodChoices


class ContentArticleSerializer(serializers.ModelSerializer):
    is_global = serializers.BooleanField(read_only=True)

    class Meta:
        model = ContentArticle
        fields = [
            'id',
            'title',
            'slug',
            'category',
            'summary',
            'body',
            'status',
            'is_global',
            'share_count',
            'view_count',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['id', 'is_global', 'share_count', 'view_count', 'created_at', 'updated_at']
        extra_kwargs = {'slug': {'required': False}}

    def validate_category(self, value):
        return slugify(value)

    def validate(self, attrs):
        if not attrs.get('slug') and attrs.get('title'):
            attrs['slug'] = slugify(attrs['title'])
        return attrs


class ContentDeliverySerializer(serializers.ModelSerializer):
    article_title = serializers.CharField(source='article.title', read_only=True)
    patient_name = serializers.CharField(source='patient.full_name', read_only=True)

    class Meta:
        model = ContentDelivery
        fields = [
            'id',
            'article',
            'article_title',
            'patient',
            'patient_name',
            'method',
            'trigger',
            'status',
            'delivered_by',
            'delivered_at',
            'viewed_at',
            'error_message',
        ]
        read_only_fields = fields


class DeliverArticleSerializer(serializers.Serializer):
    """Either `patientId` (single delivery) or `patientIds` (batch)."""
    patientId = serializers.UUIDField(required=False)
    patientIds = serializers.ListField(
        child=serializers.UUIDField(),
        required=False,
        min_length=1,
        max_length=100,
    )
    method = serializers.ChoiceField(choices=DeliveryMethodChoices.choices)

    def validate(self, attrs):
        if bool(attrs.get('patientId')) == bool(attrs.get('patientIds')):
            raise serializers.ValidationError('Provide either patientId or patientIds')
        return attrs


class StatsQuerySerializer(serializers.Serializer):
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)
