import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.conf import settings
from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Tenant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=100, unique=True)),
                ("subdomain", models.CharField(blank=True, max_length=100)),
                ("billing_email", models.EmailField(blank=True, max_length=254)),
                ("country", models.CharField(default="US", help_text="ISO 3166-1 alpha-2 country code used for gateway routing.", max_length=2)),
                ("currency", models.CharField(default="USD", help_text="ISO 4217 currency code the tenant is billed in.", max_length=3)),
                ("preferred_gateway", models.CharField(blank=True, help_text="Gateway to try first when it supports the tenant's currency.", max_length=20)),
                ("api_calls_current_period", models.PositiveIntegerField(default=0)),
                ("storage_used_gb", models.PositiveIntegerField(default=0)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="School",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("name", models.CharField(max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("student_count", models.PositiveIntegerField(default=0, help_text="Enrolled students, kept current by the roster service.")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="schools", to="tenants.tenant")),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="TenantMember",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("role", models.CharField(choices=[("ADMIN", "Admin"), ("TEACHER", "Teacher"), ("STAFF", "Staff")], default="STAFF", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="members", to="tenants.tenant")),
                ("user", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="tenant_membership", to=settings.AUTH_USER_MODEL)),
            ],
        ),
    ]
