import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="BillingNotification",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("channel", models.CharField(choices=[("email", "Email"), ("sms", "SMS")], default="email", max_length=10)),
                ("type", models.CharField(choices=[("BILLING_REMINDER", "Billing reminder"), ("SUBSCRIPTION_SUSPENDED", "Subscription suspended"), ("SUBSCRIPTION_CANCELLED", "Subscription cancelled"), ("PAYMENT_RECEIPT", "Payment receipt")], max_length=40)),
                ("recipient", models.CharField(blank=True, max_length=255)),
                ("subject", models.CharField(blank=True, max_length=255)),
                ("message", models.TextField(blank=True)),
                ("payload", models.JSONField(blank=True, default=dict)),
                ("sent_at", models.DateTimeField(blank=True, null=True)),
                ("error", models.TextField(blank=True)),
                ("subscription", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="notifications", to="billing.subscription")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="billing_notifications", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [models.Index(fields=["tenant", "type"], name="notificatio_tenant__4b8f2c_idx")],
            },
        ),
    ]
