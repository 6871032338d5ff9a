from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import Role, User, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0
    autocomplete_fields = ['role']


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Clinic logins; roles are edited inline since every permission check reads them."""
    list_display = ['email', 'clinic', 'role_list', 'is_active', 'last_login']
    list_filter = ['clinic', 'is_active', 'user_roles__role__name']
    search_fields = ['email', 'first_name', 'last_name', 'clinic__code']
    readonly_fields = ['id', 'created_at', 'updated_at', 'last_login']
    inlines = [UserRoleInline]
    ordering = ['clinic__code', 'email']

    fieldsets = (
        (None, {'fields': ('id', 'email', 'password')}),
        ('Clinic', {'fields': ('clinic', 'first_name', 'last_name')}),
        ('Access', {'fields': ('is_active', 'is_staff', 'is_superuser')}),
        ('Activity', {'fields': ('last_login', 'created_at', 'updated_at')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'clinic', 'password1', 'password2'),
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).select_related('clinic').prefetch_related('user_roles__role')

    @admin.display(description='Roles')
    def role_list(self, obj):
        return ', '.join(sorted(user_role.role.name for user_role in obj.user_roles.all()))


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name']
    search_fields = ['name']
    readonly_fields = ['id']
