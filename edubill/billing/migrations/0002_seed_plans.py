from django.db import migrations

# Frozen copy of the launch catalog. Later price or limit changes go
# through ``manage.py seed_plans --force``.
PLANS = (
    ("starter", "Starter", 2999, 1, 50, 500, 10_000, 5, 14, 1),
    ("professional", "Professional", 7999, 3, 200, 2_000, 50_000, 25, 14, 2),
    ("enterprise", "Enterprise", 19999, -1, -1, -1, -1, -1, 30, 3),
)


def create_plans(apps, schema_editor):
    Plan = apps.get_model("billing", "Plan")

    for code, name, price, schools, users, students, api_calls, storage, trial, order in PLANS:
        Plan.objects.get_or_create(
            code=code,
            defaults={
                "name": name,
                "price": price,
                "currency": "USD",
                "max_schools": schools,
                "max_users": users,
                "max_students": students,
                "max_api_calls": api_calls,
                "max_storage_gb": storage,
                "trial_days": trial,
                "display_order": order,
            },
        )


def remove_plans(apps, schema_editor):
    Plan = apps.get_model("billing", "Plan")
    Plan.objects.filter(
        code__in=[plan[0] for plan in PLANS],
        subscriptions__isnull=True,
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("billing", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(create_plans, remove_plans),
    ]
