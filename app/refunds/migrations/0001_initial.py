import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("pos", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Refund",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("refund_number", models.CharField(help_text="Unique refund number shown on receipts", max_length=40, unique=True)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Refunded amount", max_digits=12)),
                ("method", models.CharField(choices=[("cash", "Cash"), ("card", "Card"), ("account", "Account Credit"), ("store_credit", "Store Credit")], help_text="How the money is returned", max_length=20)),
                ("reason", models.CharField(blank=True, default="", help_text="Reason for the refund", max_length=255)),
                ("processed_by", models.CharField(help_text="Identity of the operator who processed the refund", max_length=150)),
                ("status", django_fsm.FSMField(choices=[("processing", "Processing"), ("completed", "Completed"), ("partially_failed", "Partially Failed"), ("voided", "Voided")], db_index=True, default="processing", help_text="Current status of the refund (managed by FSM)", max_length=50, protected=True)),
                ("execution_path", models.CharField(choices=[("atomic", "Atomic Procedure"), ("manual", "Manual Saga")], help_text="Strategy that produced this refund", max_length=10)),
                ("last_completed_step", models.CharField(blank=True, choices=[("fetch_item", "Fetch sale item"), ("guard", "Check refund eligibility"), ("create_refund", "Create refund record"), ("create_refund_item", "Create refund item"), ("restock_product", "Restock product"), ("restock_variant", "Restock variant"), ("restock_branch", "Restock branch stock"), ("credit_account", "Credit customer account"), ("mark_refunded", "Mark sale item refunded")], default="", help_text="Last saga step whose writes committed", max_length=32)),
                ("failed_step", models.CharField(blank=True, choices=[("fetch_item", "Fetch sale item"), ("guard", "Check refund eligibility"), ("create_refund", "Create refund record"), ("create_refund_item", "Create refund item"), ("restock_product", "Restock product"), ("restock_variant", "Restock variant"), ("restock_branch", "Restock branch stock"), ("credit_account", "Credit customer account"), ("mark_refunded", "Mark sale item refunded")], default="", help_text="Step that failed on the last attempt", max_length=32)),
                ("processed_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text="When the refund was processed")),
                ("completed_at", models.DateTimeField(blank=True, help_text="When the refund completed", null=True)),
                ("failure_reason", models.TextField(blank=True, default="", help_text="Internal failure detail for operators")),
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Arbitrary JSON metadata for extensibility")),
                ("branch", models.ForeignKey(help_text="Branch where the refund was processed", on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="pos.branch")),
                ("customer", models.ForeignKey(blank=True, help_text="Customer associated with (and possibly credited by) the refund", null=True, on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="pos.customer")),
                ("original_sale", models.ForeignKey(help_text="Sale the refunded item belongs to", on_delete=django.db.models.deletion.PROTECT, related_name="refunds", to="pos.sale")),
                ("sale_item", models.ForeignKey(help_text="Line item this refund reverses", on_delete=django.db.models.deletion.PROTECT, related_name="refund_attempts", to="pos.saleitem")),
            ],
            options={
                "verbose_name": "Refund",
                "verbose_name_plural": "Refunds",
                "ordering": ["-processed_at"],
                "indexes": [
                    models.Index(fields=["branch", "processed_at"], name="refund_branch_processed_idx"),
                    models.Index(fields=["status", "updated_at"], name="refund_status_updated_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="refund_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RefundItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("quantity", models.PositiveIntegerField()),
                ("unit_price", models.DecimalField(decimal_places=2, max_digits=12)),
                ("refund_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("original_sale_item", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="refund_item", to="pos.saleitem")),
                ("product", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="refund_items", to="pos.product")),
                ("refund", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="items", to="refunds.refund")),
                ("variant", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="refund_items", to="pos.productvariant")),
            ],
            options={
                "ordering": ["created_at"],
            },
        ),
        migrations.CreateModel(
            name="CustomerCreditTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Credited amount", max_digits=12)),
                ("reason", models.CharField(choices=[("refund", "Refund")], default="refund", max_length=20)),
                ("idempotency_key", models.CharField(help_text="Unique key to prevent duplicate credits", max_length=255, unique=True)),
                ("balance_after", models.DecimalField(decimal_places=2, help_text="Customer balance after this credit", max_digits=12)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("customer", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="credit_transactions", to="pos.customer")),
                ("refund", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="credit_transactions", to="refunds.refund")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["customer", "created_at"], name="credit_customer_created_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(("amount__gt", 0)), name="credit_amount_positive"),
                ],
            },
        ),
    ]
