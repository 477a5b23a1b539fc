from django.contrib import admin

from edubill.notifications.models import BillingNotification


@admin.register(BillingNotification)
class BillingNotificationAdmin(admin.ModelAdmin):
    list_display = ["tenant", "type", "channel", "recipient", "sent_at", "created"]
    list_filter = ["type", "channel"]
    search_fields = ["tenant__name", "recipient", "subject"]
    readonly_fields = ["created", "modified", "sent_at", "error", "payload"]
    raw_id_fields = ["tenant", "subscription"]
