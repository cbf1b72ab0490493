"""
URL configuration for the settlement service.

URL Structure:
    /                                   - ReDoc API documentation
    /admin/                             - Django admin interface
    /health/                            - Health check endpoint (load balancers, Docker)
    /schema/                            - OpenAPI schema (YAML)
    /api/v1/settlements/                - Settlement endpoints
        trips/{trip_id}/plan/           - Current or versioned plan (GET)
        trips/{trip_id}/status/         - Confirmation status, polled (GET)
        trips/{trip_id}/confirm/        - Confirm as the current user (POST)
        trips/{trip_id}/finalize/       - Finalize a fully confirmed plan (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("settlements/", include("settlements.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Trip settlements"
