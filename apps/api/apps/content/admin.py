from django.contrib import admin

from .models import ContentArticle, ContentDelivery


@admin.register(ContentArticle)
class ContentArticleAdmin(admin.ModelAdmin):
    list_display = ['title', 'category', 'status', 'clinic', 'share_count', 'view_count']
    list_filter = ['status', 'category', 'clinic']
    search_fields = ['title', 'slug']
    prepopulated_fields = {'slug': ('title',)}


@admin.register(ContentDelivery)
class ContentDeliveryAdmin(admin.ModelAdmin):
    list_display = ['article', 'patient', 'method', 'trigger', 'status', 'delivered_at', 'viewed_at']
    list_filter = ['clinic', 'method', 'status', 'trigger']
    raw_id_fields = ['article', 'patient']
