"""
Refund admin configuration.

Refunds can be inspected but their status only changes through the
services (the FSM field is protected). Ledger transactions are immutable:
no add, change or delete permissions.
"""

from django.contrib import admin

from refunds.models import CustomerCreditTransaction, Refund, RefundItem


class RefundItemInline(admin.TabularInline):
    model = RefundItem
    extra = 0
    can_delete = False
    readonly_fields = [
        "original_sale_item",
        "product",
        "variant",
        "quantity",
        "unit_price",
        "refund_amount",
        "reason",
    ]


@admin.register(Refund)
class RefundAdmin(admin.ModelAdmin):
    """
    Admin configuration for Refund.

    Provides visibility into refund status, execution path and the saga
    cursor for partially failed refunds.
    """

    list_display = [
        "refund_number",
        "branch",
        "amount",
        "method",
        "status",
        "execution_path",
        "last_completed_step",
        "processed_at",
    ]
    list_filter = ["status", "method", "execution_path", "branch"]
    search_fields = ["id", "refund_number", "processed_by", "customer__name"]
    readonly_fields = [
        "id",
        "status",
        "execution_path",
        "last_completed_step",
        "failed_step",
        "failure_reason",
        "processed_at",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "processed_at"
    ordering = ["-processed_at"]
    inlines = [RefundItemInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "refund_number", "status", "execution_path"),
            },
        ),
        (
            "Refund",
            {
                "fields": (
                    "original_sale",
                    "sale_item",
                    "customer",
                    "branch",
                    "amount",
                    "method",
                    "reason",
                    "processed_by",
                ),
            },
        ),
        (
            "Saga",
            {
                "fields": ("last_completed_step", "failed_step", "failure_reason"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("processed_at", "completed_at", "created_at", "updated_at"),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
                "classes": ("collapse",),
            },
        ),
    )


@admin.register(CustomerCreditTransaction)
class CustomerCreditTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for CustomerCreditTransaction.

    Credits are immutable - corrections are made with new transactions.
    """

    list_display = ["id", "created_at", "customer", "amount", "reason", "balance_after"]
    list_filter = ["reason", "created_at"]
    search_fields = ["id", "idempotency_key", "customer__name"]
    ordering = ["-created_at"]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


__all__ = [
    "CustomerCreditTransactionAdmin",
    "RefundAdmin",
]
