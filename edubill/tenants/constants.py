from django.db import models
from django.utils.translation import gettext_lazy as _


class MemberRole(models.TextChoices):
    ADMIN = "ADMIN", _("Admin")
    TEACHER = "TEACHER", _("Teacher")
    STAFF = "STAFF", _("Staff")
