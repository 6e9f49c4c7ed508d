"""
URL configuration for the refunds app.

Routes:
    - POST /                      - Refund a sale item
    - GET  /<refund_id>/          - Refund details
    - POST /<refund_id>/resume/   - Resume a partially failed refund
    - GET  /history/              - Refund history
    - GET  /stats/                - Refund statistics
    - GET  /analytics/            - Refund analytics

All routes are prefixed with /api/v1/refunds/ when included in the main URLconf.
"""

from django.urls import path

from refunds.views import (
    RefundAnalyticsView,
    RefundCreateView,
    RefundDetailView,
    RefundHistoryView,
    RefundResumeView,
    RefundStatsView,
)

app_name = "refunds"

urlpatterns = [
    path("", RefundCreateView.as_view(), name="create"),
    path("history/", RefundHistoryView.as_view(), name="history"),
    path("stats/", RefundStatsView.as_view(), name="stats"),
    path("analytics/", RefundAnalyticsView.as_view(), name="analytics"),
    path("<uuid:refund_id>/", RefundDetailView.as_view(), name="detail"),
    path("<uuid:refund_id>/resume/", RefundResumeView.as_view(), name="resume"),
]
