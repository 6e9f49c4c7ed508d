"""
URL configuration for the POS refund service.

Routes:
    /                              ReDoc
    /schema/                       OpenAPI schema
    /admin/                        Back-office admin
    /health/                       Database and Redis reachability
    /api/v1/auth/token/            JWT pair for a POS terminal
    /api/v1/auth/token/refresh/    Refresh the access token
    /api/v1/refunds/               POST a refund
    /api/v1/refunds/<id>/          GET refund details
    /api/v1/refunds/<id>/resume/   POST to resume a partially failed refund
    /api/v1/refunds/history/       GET refund history
    /api/v1/refunds/stats/         GET refund statistics
    /api/v1/refunds/analytics/     GET refund analytics
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    # Terminal login
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Refunds
    path("refunds/", include("refunds.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Load balancer health check
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "POS Refunds Admin"
admin.site.site_title = "POS Refunds"
admin.site.index_title = "Refunds and inventory"
