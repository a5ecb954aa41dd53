from rest_framework.permissions import BasePermission

def _role(user):
    return getattr(user, "role", None)

class IsAdmin(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and (_role(request.user) == "ADMIN" or request.user.is_staff))

class IsAcademic(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and _role(request.user) == "ACADEMIC")

class IsStudent(BasePermission):
    def has_permission(self, request, view):
        return bool(request.user and request.user.is_authenticated and _role(request.user) == "STUDENT")

class IsAdminOrAcademic(BasePermission):
    def has_permission(self, request, view):
        return IsAdmin().has_permission(request, view) or IsAcademic().has_permission(request, view)
