from django.conf import settings
from django.contrib import admin
from django.urls import include
from django.urls import path
from drf_spectacular.views import SpectacularAPIView
from drf_spectacular.views import SpectacularSwaggerView
from rest_framework.authtoken.views import obtain_auth_token

urlpatterns = [
    # Admin URLs...
    path(settings.ADMIN_URL, admin.site.urls),
    # Billing API
    path("billing/", include("edubill.billing.urls", namespace="billing")),
    # Token auth and schema
    path("api/v1/auth-token/", obtain_auth_token, name="auth-token"),
    path("api/v1/schema/", SpectacularAPIView.as_view(), name="api-schema"),
    path(
        "api/v1/docs/",
        SpectacularSwaggerView.as_view(url_name="api-schema"),
        name="api-docs",
    ),
]
