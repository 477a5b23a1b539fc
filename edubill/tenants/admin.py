from django.contrib import admin

from edubill.tenants.models import School
from edubill.tenants.models import Tenant
from edubill.tenants.models import TenantMember


class SchoolInline(admin.TabularInline):
    model = School
    extra = 0
    fields = ["name", "email", "student_count"]


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "country", "currency", "preferred_gateway"]
    search_fields = ["name", "slug", "billing_email"]
    list_filter = ["country", "currency"]
    inlines = [SchoolInline]


@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    list_display = ["name", "tenant", "student_count"]
    search_fields = ["name", "tenant__name"]


@admin.register(TenantMember)
class TenantMemberAdmin(admin.ModelAdmin):
    list_display = ["user", "tenant", "role", "is_active"]
    list_filter = ["role", "is_active"]
    raw_id_fields = ["user", "tenant"]
