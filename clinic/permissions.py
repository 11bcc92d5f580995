"""
Custom permission classes for role and branch based access control.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

ADMIN_ROLES = {"admin"}
CLINICAL_ROLES = {"admin", "doctor", "nurse"}
FRONT_DESK_ROLES = {"admin", "reception"}
INVENTORY_ROLES = {"admin", "user"}


def has_role(user, roles) -> bool:
    if not (user and user.is_authenticated):
        return False
    return getattr(user, "is_superuser", False) or getattr(user, "role", None) in roles


class IsAdminRole(BasePermission):
    """Allow access only to clinic administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), ADMIN_ROLES)


class IsClinicalStaff(BasePermission):
    """Doctors, nurses and administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), CLINICAL_ROLES)


class IsFrontDesk(BasePermission):
    """Reception and administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), FRONT_DESK_ROLES)


class IsInventoryManager(BasePermission):
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return has_role(getattr(request, "user", None), INVENTORY_ROLES)


class ReadOnly(BasePermission):
    """Allow read-only access (GET, HEAD, OPTIONS)."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return request.method in SAFE_METHODS


class IsSameBranch(BasePermission):
    """User must be in the same branch as the object (expects `obj.branch_id`)."""
    def has_object_permission(self, request, view, obj) -> bool:
        user = getattr(request, "user", None)
        if has_role(user, ADMIN_ROLES):
            return True
        if not (user and user.is_authenticated):
            return False
        return bool(user.branch_id) and getattr(obj, "branch_id", None) == user.branch_id
