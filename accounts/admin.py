from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = (
        "username", "email", "role", "reg_no", "department",
        "is_staff", "is_superuser", "is_active", "date_joined",
    )
    list_filter = ("role", "department", "is_staff", "is_superuser", "is_active")
    search_fields = ("username", "email", "reg_no", "first_name", "last_name")
    ordering = ("-date_joined",)

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Profile", {"fields": ("role", "reg_no", "department")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Profile", {
            "classes": ("wide",),
            "fields": ("role", "reg_no", "department"),
        }),
    )
