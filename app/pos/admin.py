"""
POS admin configuration.

Stock and balance columns are read-only in the admin: they are changed by
sales and refunds, never edited by hand.
"""

from django.contrib import admin

from pos.models import (
    Branch,
    BranchStock,
    Customer,
    Product,
    ProductVariant,
    Sale,
    SaleItem,
)


@admin.register(Branch)
class BranchAdmin(admin.ModelAdmin):
    list_display = ["name", "code", "is_active", "created_at"]
    list_filter = ["is_active"]
    search_fields = ["name", "code"]


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ["name", "email", "phone", "account_balance", "created_at"]
    search_fields = ["name", "email", "phone"]
    readonly_fields = ["id", "account_balance", "created_at", "updated_at"]


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    readonly_fields = ["stock_quantity"]


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ["name", "sku", "price", "stock_quantity"]
    search_fields = ["name", "sku"]
    readonly_fields = ["id", "stock_quantity", "created_at", "updated_at"]
    inlines = [ProductVariantInline]


@admin.register(BranchStock)
class BranchStockAdmin(admin.ModelAdmin):
    list_display = ["branch", "product", "variant", "stock_quantity"]
    list_filter = ["branch"]
    search_fields = ["product__name", "product__sku"]
    readonly_fields = ["stock_quantity"]


class SaleItemInline(admin.TabularInline):
    model = SaleItem
    extra = 0
    readonly_fields = ["refunded", "refund_amount", "refund_date"]


@admin.register(Sale)
class SaleAdmin(admin.ModelAdmin):
    list_display = ["sale_number", "branch", "customer", "total_amount", "created_at"]
    list_filter = ["branch"]
    search_fields = ["sale_number", "customer__name"]
    inlines = [SaleItemInline]
