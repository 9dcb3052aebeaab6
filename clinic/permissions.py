"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

ADMIN_ROLES = {"admin"}
STAFF_ROLES = {"admin", "staff", "doctor"}
BILLING_ROLES = {"admin", "staff"}


def _role(request):
    user = getattr(request, "user", None)
    if not (user and user.is_authenticated):
        return None
    if user.is_superuser:
        return "admin"
    return getattr(user, "role", None)


class IsAdminRole(BasePermission):
    """Allow access only to users with an administrative role."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in ADMIN_ROLES


class IsStaffRole(BasePermission):
    """Any hospital account: administrators, front desk staff and doctors."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _role(request) in STAFF_ROLES


class IsBillingRole(BasePermission):
    """Invoice and payment writes; doctors may only read."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        role = _role(request)
        if request.method in SAFE_METHODS:
            return role in STAFF_ROLES
        return role in BILLING_ROLES


class AdminForDelete(BasePermission):
    """Staff may read and write; only administrators delete."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        role = _role(request)
        if request.method == "DELETE":
            return role in ADMIN_ROLES
        return role in STAFF_ROLES
