from django.contrib import admin

from edubill.dunning.models import DunningCampaign
from edubill.dunning.models import DunningRule


@admin.register(DunningRule)
class DunningRuleAdmin(admin.ModelAdmin):
    """Tenant rules override the platform rules (blank tenant)."""

    list_display = ["name", "tenant", "trigger_days", "action", "is_active"]
    list_filter = ["action", "is_active"]
    search_fields = ["name", "tenant__name"]
    raw_id_fields = ["tenant"]
    ordering = ["tenant", "trigger_days"]


@admin.register(DunningCampaign)
class DunningCampaignAdmin(admin.ModelAdmin):
    list_display = [
        "subscription",
        "tenant",
        "status",
        "current_step",
        "total_steps",
        "next_action_at",
        "started_at",
    ]
    list_filter = ["status"]
    search_fields = ["tenant__name", "subscription__id"]
    raw_id_fields = ["subscription", "tenant", "payment"]
    readonly_fields = ["steps", "started_at", "last_action_at", "completed_at", "created", "modified"]
