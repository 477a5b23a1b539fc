import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models

ACTION_CHOICES = [
    ("EMAIL", "Email reminder"),
    ("SMS", "SMS reminder"),
    ("SUSPEND", "Suspend service"),
    ("CANCEL", "Cancel subscription"),
]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="DunningRule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("name", models.CharField(max_length=100)),
                ("trigger_days", models.PositiveIntegerField(help_text="Days after the campaign started.")),
                ("action", models.CharField(choices=ACTION_CHOICES, max_length=10)),
                ("template_id", models.CharField(blank=True, max_length=100)),
                ("is_active", models.BooleanField(default=True)),
                ("tenant", models.ForeignKey(blank=True, help_text="Blank for platform-wide default rules.", null=True, on_delete=django.db.models.deletion.CASCADE, related_name="dunning_rules", to="tenants.tenant")),
            ],
            options={
                "ordering": ["trigger_days", "id"],
            },
        ),
        migrations.CreateModel(
            name="DunningCampaign",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("COMPLETED", "Completed"), ("CANCELLED", "Cancelled")], default="ACTIVE", max_length=10)),
                ("steps", models.JSONField(default=list)),
                ("current_step", models.PositiveIntegerField(default=0)),
                ("total_steps", models.PositiveIntegerField(default=0)),
                ("started_at", models.DateTimeField()),
                ("next_action_at", models.DateTimeField(blank=True, null=True)),
                ("last_action_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("payment", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="dunning_campaigns", to="billing.payment")),
                ("subscription", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="dunning_campaigns", to="billing.subscription")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="dunning_campaigns", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [models.Index(fields=["status", "next_action_at"], name="dunning_dun_status_7e3a91_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status="ACTIVE"),
                        fields=("subscription",),
                        name="uniq_active_dunning_campaign",
                    ),
                ],
            },
        ),
    ]
