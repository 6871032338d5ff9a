"""
Role-based permissions for the operations API.

All classes share one rule: admin can do everything, other roles are
checked against an allow-list. Tenant scoping is handled separately by
ClinicScopedMixin.
"""
from rest_framework import permissions
from apps.authz.models import RoleChoices


def get_user_roles(user):
    """Return the set of role names for `user` (empty when anonymous)."""
    if not user or not user.is_authenticated:
        return set()
    return set(user.user_roles.values_list('role__name', flat=True))


class RoleBasedPermission(permissions.BasePermission):
    """
    Allow `read_roles` on safe methods and `write_roles` on the rest.

    Subclasses only declare the role sets.
    """
    read_roles = frozenset()
    write_roles = frozenset()

    def has_permission(self, request, view):
        user_roles = get_user_roles(request.user)
        if not user_roles:
            return False

        if RoleChoices.ADMIN in user_roles:
            return True

        if request.method in permissions.SAFE_METHODS:
            return bool(user_roles & (self.read_roles | self.write_roles))

        return bool(user_roles & self.write_roles)

    def has_object_permission(self, request, view, obj):
        return self.has_permission(request, view)


class CanManageStaff(RoleBasedPermission):
    """
    - Admin, Manager: full access (including termination)
    - Provider, Front desk: read-only (provider pickers)
    """
    read_roles = frozenset({RoleChoices.PROVIDER, RoleChoices.FRONT_DESK, RoleChoices.CLINICAL_STAFF})
    write_roles = frozenset({RoleChoices.MANAGER})


class CanOperateFront(RoleBasedPermission):
    """
    Patients, booking, patient flow, chairs.

    - Front desk, clinical staff, provider, manager: read/write
    - Lab coordinator: read-only (patient lookups)
    """
    read_roles = frozenset({RoleChoices.LAB_COORDINATOR})
    write_roles = frozenset({
        RoleChoices.MANAGER,
        RoleChoices.PROVIDER,
        RoleChoices.CLINICAL_STAFF,
        RoleChoices.FRONT_DESK,
    })


class CanManageLab(RoleBasedPermission):
    """
    - Lab coordinator, manager, provider, clinical staff: read/write
    - Front desk: read-only (pickup questions)
    """
    read_roles = frozenset({RoleChoices.FRONT_DESK})
    write_roles = frozenset({
        RoleChoices.LAB_COORDINATOR,
        RoleChoices.MANAGER,
        RoleChoices.PROVIDER,
        RoleChoices.CLINICAL_STAFF,
    })


class CanApproveRemakes(RoleBasedPermission):
    """Remake approval is a cost decision: manager and provider only."""
    write_roles = frozenset({RoleChoices.MANAGER, RoleChoices.PROVIDER})


class CanManageContent(RoleBasedPermission):
    """
    - Manager, provider, front desk: read/write and deliver
    - Clinical staff: read-only
    """
    read_roles = frozenset({RoleChoices.CLINICAL_STAFF})
    write_roles = frozenset({RoleChoices.MANAGER, RoleChoices.PROVIDER, RoleChoices.FRONT_DESK})


class CanViewDashboards(RoleBasedPermission):
    """Read-only operational dashboards."""
    read_roles = frozenset({
        RoleChoices.MANAGER,
        RoleChoices.PROVIDER,
        RoleChoices.CLINICAL_STAFF,
        RoleChoices.FRONT_DESK,
    })
