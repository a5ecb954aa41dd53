from django.contrib.auth.models import AbstractUser
from django.db import models


class User(AbstractUser):
    class Roles(models.TextChoices):
        ADMIN    = "ADMIN",    "Admin"
        ACADEMIC = "ACADEMIC", "Academic"
        STUDENT  = "STUDENT",  "Student"

    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.STUDENT)

    reg_no     = models.CharField(max_length=64, blank=True, help_text="Student registration number")
    department = models.CharField(max_length=128, blank=True)

    def __str__(self):
        return f"{self.username} • {self.role}"
