import uuid

import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations
from django.db import models

OPEN = ~models.Q(status__in=["CANCELED", "INCOMPLETE_EXPIRED"])


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                ("code", models.CharField(help_text="Unique plan identifier, also used as PK.", max_length=40, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100)),
                ("description", models.TextField(blank=True)),
                ("price", models.PositiveIntegerField(help_text="Monthly price in minor units.")),
                ("yearly_price", models.PositiveIntegerField(blank=True, help_text="Price for a yearly cycle. Blank = 12 × monthly price.", null=True)),
                ("currency", models.CharField(default="USD", max_length=3)),
                ("interval", models.CharField(choices=[("month", "Month"), ("year", "Year")], default="month", max_length=10)),
                ("features", models.JSONField(blank=True, default=list)),
                ("max_schools", models.IntegerField(default=-1)),
                ("max_users", models.IntegerField(default=-1)),
                ("max_students", models.IntegerField(default=-1)),
                ("max_api_calls", models.IntegerField(default=-1)),
                ("max_storage_gb", models.IntegerField(default=-1)),
                ("trial_days", models.PositiveIntegerField(default=14)),
                ("is_active", models.BooleanField(default=True)),
                ("display_order", models.IntegerField(default=0)),
                ("gateway_price_ids", models.JSONField(blank=True, default=dict, help_text='Provider price references, e.g. {"stripe": "price_123"}.')),
            ],
            options={
                "ordering": ["display_order", "code"],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("status", models.CharField(choices=[("TRIAL", "Trial"), ("ACTIVE", "Active"), ("PAST_DUE", "Past Due"), ("UNPAID", "Unpaid"), ("SUSPENDED", "Suspended"), ("CANCELED", "Canceled"), ("INCOMPLETE", "Incomplete"), ("INCOMPLETE_EXPIRED", "Incomplete Expired")], default="ACTIVE", max_length=20)),
                ("billing_cycle", models.CharField(choices=[("MONTHLY", "Monthly"), ("QUARTERLY", "Quarterly"), ("YEARLY", "Yearly")], default="MONTHLY", max_length=10)),
                ("current_period_start", models.DateTimeField()),
                ("current_period_end", models.DateTimeField()),
                ("trial_start", models.DateTimeField(blank=True, null=True)),
                ("trial_end", models.DateTimeField(blank=True, null=True)),
                ("cancel_at_period_end", models.BooleanField(default=False)),
                ("canceled_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.CharField(blank=True, choices=[("USER_REQUESTED", "Requested by customer"), ("NON_PAYMENT", "Non-payment"), ("GATEWAY_CANCELED", "Canceled at payment gateway"), ("ADMIN", "Canceled by administrator")], max_length=20)),
                ("suspended_at", models.DateTimeField(blank=True, null=True)),
                ("gateway", models.CharField(blank=True, choices=[("stripe", "Stripe"), ("paytabs", "PayTabs"), ("paymob", "PayMob")], max_length=20)),
                ("gateway_customer_id", models.CharField(blank=True, max_length=255)),
                ("gateway_subscription_id", models.CharField(blank=True, max_length=255)),
                ("payment_method_id", models.CharField(blank=True, max_length=255)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("plan", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="subscriptions", to="billing.plan")),
                ("school", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.CASCADE, related_name="subscriptions", to="tenants.school")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="subscriptions", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [
                    models.Index(fields=["status", "current_period_end"], name="billing_sub_status_9c1e2a_idx"),
                    models.Index(fields=["gateway_subscription_id"], name="billing_sub_gateway_3f7b4d_idx"),
                    models.Index(fields=["gateway_customer_id"], name="billing_sub_gateway_8a2c6e_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(condition=models.Q(("school__isnull", False)) & OPEN, fields=("tenant", "school"), name="uniq_open_subscription_per_school"),
                    models.UniqueConstraint(condition=models.Q(("school__isnull", True)) & OPEN, fields=("tenant",), name="uniq_open_subscription_per_tenant"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PlanChange",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("change_type", models.CharField(choices=[("UPGRADE", "Upgrade"), ("DOWNGRADE", "Downgrade"), ("LATERAL", "Lateral")], max_length=20)),
                ("effective_at", models.DateTimeField()),
                ("proration_amount", models.IntegerField(default=0, help_text="Positive = charge, negative = credit. Minor units.")),
                ("prorated", models.BooleanField(default=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("new_plan", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="changes_to", to="billing.plan")),
                ("old_plan", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="changes_from", to="billing.plan")),
                ("subscription", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="plan_changes", to="billing.subscription")),
            ],
            options={
                "ordering": ["-created"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created", model_utils.fields.AutoCreatedField(default=django.utils.timezone.now, editable=False, verbose_name="created")),
                ("modified", model_utils.fields.AutoLastModifiedField(default=django.utils.timezone.now, editable=False, verbose_name="modified")),
                ("gateway", models.CharField(choices=[("stripe", "Stripe"), ("paytabs", "PayTabs"), ("paymob", "PayMob")], max_length=20)),
                ("gateway_payment_id", models.CharField(blank=True, max_length=255)),
                ("amount", models.PositiveBigIntegerField()),
                ("currency", models.CharField(max_length=3)),
                ("status", models.CharField(choices=[("PENDING", "Pending"), ("REQUIRES_ACTION", "Requires action"), ("SUCCEEDED", "Succeeded"), ("FAILED", "Failed"), ("CANCELED", "Canceled"), ("REFUNDED", "Refunded")], default="PENDING", max_length=20)),
                ("original_amount", models.PositiveBigIntegerField(blank=True, null=True)),
                ("original_currency", models.CharField(blank=True, max_length=3)),
                ("exchange_rate", models.DecimalField(blank=True, decimal_places=8, max_digits=18, null=True)),
                ("gateway_fee", models.PositiveIntegerField(default=0)),
                ("conversion_fee", models.PositiveIntegerField(default=0)),
                ("payment_method_id", models.CharField(blank=True, max_length=255)),
                ("description", models.CharField(blank=True, max_length=255)),
                ("redirect_url", models.URLField(blank=True, max_length=1000)),
                ("refunded_amount", models.PositiveBigIntegerField(default=0)),
                ("failure_code", models.CharField(blank=True, max_length=100)),
                ("failure_message", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("subscription", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="payments", to="billing.subscription")),
                ("tenant", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="tenants.tenant")),
            ],
            options={
                "ordering": ["-created"],
                "indexes": [
                    models.Index(fields=["gateway", "gateway_payment_id"], name="billing_pay_gateway_5d9e1b_idx"),
                ],
            },
        ),
    ]
