from rest_framework.permissions import BasePermission, SAFE_METHODS


def is_admin_user(user):
    return bool(user and user.is_authenticated and getattr(user, "is_admin", False))


class IsAdminOrSuperAdmin(BasePermission):
    """
    - Anyone authenticated may read (GET/HEAD/OPTIONS).
    - Writes require an admin: staff, superuser or the configured admin pseudonym.
    """
    message = "Apenas administradores podem executar esta ação."

    def has_permission(self, request, view):
        if request.method in SAFE_METHODS:
            return bool(request.user and request.user.is_authenticated)
        return is_admin_user(request.user)

    def has_object_permission(self, request, view, obj):
        return self.has_permission(request, view)


class IsOwnerOrAdmin(BasePermission):
    """Writes on an object are limited to its owner (`obj.user_id`) or an admin."""
    message = "Você só pode alterar itens que você criou."

    def has_object_permission(self, request, view, obj):
        if request.method in SAFE_METHODS:
            return True
        return obj.user_id == request.user.id or is_admin_user(request.user)
