import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Store",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Store display name", max_length=200)),
                (
                    "email",
                    models.EmailField(
                        help_text="Contact email for settlement and payout notifications",
                        max_length=254,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("active", "Active"),
                            ("pending", "Pending"),
                            ("suspended", "Suspended"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="active",
                        help_text="Only active stores can accept new orders",
                        max_length=20,
                    ),
                ),
                (
                    "is_verified",
                    models.BooleanField(
                        default=False, help_text="Whether the store passed verification"
                    ),
                ),
                (
                    "shipping_methods",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Configured shipping methods; prices in kobo",
                    ),
                ),
                (
                    "payout_accounts",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Bank accounts withdrawals may be paid into",
                    ),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        help_text="User who manages this store",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="stores",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Store",
                "verbose_name_plural": "Stores",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Product",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(max_length=200)),
                ("price", models.PositiveBigIntegerField(help_text="Unit price in kobo")),
                (
                    "stock_quantity",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Units in stock when the product has no size variants",
                    ),
                ),
                (
                    "sizes",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Size variants: [{size, quantity, price?}]",
                    ),
                ),
                (
                    "product_type",
                    models.CharField(
                        choices=[("physical", "Physical"), ("digital", "Digital")],
                        default="physical",
                        max_length=20,
                    ),
                ),
                (
                    "is_available",
                    models.BooleanField(
                        default=True, help_text="False when the product is no longer sold"
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="products",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Product",
                "verbose_name_plural": "Products",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Order",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "total_amount",
                    models.PositiveBigIntegerField(
                        help_text="Order total (items + shipping) in kobo"
                    ),
                ),
                (
                    "payment_status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Payment outcome (managed by FSM, never reverts)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        help_text="Gateway tx_ref; guarantees one order per checkout attempt",
                        max_length=100,
                        unique=True,
                    ),
                ),
                ("payment_gateway", models.CharField(default="flutterwave", max_length=30)),
                (
                    "gateway_transaction_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Flutterwave transaction id of the successful charge",
                        max_length=100,
                        null=True,
                    ),
                ),
                (
                    "shipping_address",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Shipping info snapshot taken at checkout",
                    ),
                ),
                (
                    "expire_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When an unpaid order becomes eligible for cleanup",
                        null=True,
                    ),
                ),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                (
                    "buyer",
                    models.ForeignKey(
                        help_text="User who placed the order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["buyer", "payment_status"],
                        name="settlement__buyer_i_6c1f0e_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gt", 0)),
                        name="order_total_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SubOrder",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "total_amount",
                    models.PositiveBigIntegerField(
                        help_text="Item subtotal in kobo, shipping excluded"
                    ),
                ),
                (
                    "shipping_method",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Snapshot of the shipping method the buyer selected",
                    ),
                ),
                (
                    "delivery_status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("shipped", "Shipped"),
                            ("out_for_delivery", "Out for Delivery"),
                            ("delivered", "Delivered"),
                            ("canceled", "Canceled"),
                            ("returned", "Returned"),
                            ("failed_delivery", "Failed Delivery"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Delivery state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "delivery_date",
                    models.DateTimeField(
                        blank=True, help_text="When the sub-order was marked delivered", null=True
                    ),
                ),
                (
                    "return_window",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="Escrow can be released once this has passed",
                        null=True,
                    ),
                ),
                ("customer_confirmed", models.BooleanField(default=False)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "auto_confirmed",
                    models.BooleanField(
                        default=False,
                        help_text="True when an administrator confirmed on the buyer's behalf",
                    ),
                ),
                ("escrow_held", models.BooleanField(default=True)),
                ("escrow_released", models.BooleanField(default=False)),
                ("escrow_refunded", models.BooleanField(default=False)),
                ("escrow_released_at", models.DateTimeField(blank=True, null=True)),
                ("escrow_refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "escrow_refund_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Why the sub-order is awaiting or received a refund",
                    ),
                ),
                (
                    "escrow_refund_reference",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Gateway refund id once the buyer refund was issued",
                        max_length=100,
                    ),
                ),
                ("status_history", models.JSONField(blank=True, default=list)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sub_orders",
                        to="settlement.order",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sub_orders",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Sub-order",
                "verbose_name_plural": "Sub-orders",
                "ordering": ["-created_at"],
                "permissions": [
                    ("approve_refund", "Can approve escrow refunds"),
                    ("confirm_delivery", "Can confirm delivery on a buyer's behalf"),
                    ("view_refund_queue", "Can view the refund queue"),
                ],
                "indexes": [
                    models.Index(
                        fields=["store", "delivery_status"],
                        name="settlement__store_i_2b7d4a_idx",
                    ),
                    models.Index(
                        fields=["delivery_status", "escrow_held"],
                        name="settlement__deliver_9e3c51_idx",
                    ),
                    models.Index(
                        fields=["order", "store"],
                        name="settlement__order_i_4f8a20_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("escrow_held", True),
                                ("escrow_released", False),
                                ("escrow_refunded", False),
                            ),
                            models.Q(
                                ("escrow_held", False),
                                ("escrow_released", True),
                                ("escrow_refunded", False),
                            ),
                            models.Q(
                                ("escrow_held", False),
                                ("escrow_released", False),
                                ("escrow_refunded", True),
                            ),
                            _connector="OR",
                        ),
                        name="sub_order_escrow_single_terminal_state",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="SubOrderItem",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("quantity", models.PositiveIntegerField()),
                (
                    "unit_price",
                    models.PositiveBigIntegerField(help_text="Unit price in kobo at checkout"),
                ),
                ("selected_size", models.CharField(blank=True, default="", max_length=20)),
                ("product_snapshot", models.JSONField(blank=True, default=dict)),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="order_items",
                        to="settlement.product",
                    ),
                ),
                (
                    "sub_order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="settlement.suborder",
                    ),
                ),
            ],
            options={
                "verbose_name": "Sub-order item",
                "verbose_name_plural": "Sub-order items",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("quantity__gt", 0)),
                        name="sub_order_item_quantity_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Wallet",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "balance",
                    models.BigIntegerField(
                        default=0,
                        help_text="Withdrawable balance in kobo; equals the signed ledger sum",
                    ),
                ),
                (
                    "pending",
                    models.BigIntegerField(
                        default=0,
                        help_text="Funds awaiting escrow release or withdrawal payout",
                    ),
                ),
                (
                    "total_earned",
                    models.BigIntegerField(
                        default=0,
                        help_text="Lifetime escrow releases credited to this wallet",
                    ),
                ),
                ("currency", models.CharField(default="NGN", max_length=3)),
                (
                    "store",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="wallet",
                        to="settlement.store",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet",
                "verbose_name_plural": "Wallets",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)),
                        name="wallet_balance_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("pending__gte", 0)),
                        name="wallet_pending_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletTransaction",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        choices=[("credit", "Credit"), ("debit", "Debit")], max_length=10
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("order", "Order"),
                            ("withdrawal", "Withdrawal"),
                            ("refund", "Refund"),
                            ("adjustment", "Adjustment"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "amount",
                    models.PositiveBigIntegerField(
                        help_text="Always positive; direction comes from type"
                    ),
                ),
                ("balance_after", models.BigIntegerField()),
                (
                    "related_document_type",
                    models.CharField(blank=True, default="", max_length=30),
                ),
                ("related_document_id", models.UUIDField(blank=True, null=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        help_text="Prevents posting the same settlement event twice",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                (
                    "related_order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="wallet_transactions",
                        to="settlement.order",
                    ),
                ),
                (
                    "related_sub_order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="wallet_transactions",
                        to="settlement.suborder",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="settlement.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet Transaction",
                "verbose_name_plural": "Wallet Transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["wallet", "created_at"],
                        name="settlement__wallet__8d2e6b_idx",
                    ),
                    models.Index(
                        fields=["wallet", "type"],
                        name="settlement__wallet__a1c97f_idx",
                    ),
                    models.Index(
                        fields=["related_document_type", "related_document_id"],
                        name="settlement__related_5e0b3d_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="wallet_transaction_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="FundRelease",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                ("item_subtotal", models.PositiveBigIntegerField()),
                ("commission", models.PositiveBigIntegerField()),
                ("applied_percentage_fee", models.PositiveBigIntegerField(default=0)),
                ("applied_flat_fee", models.PositiveBigIntegerField(default=0)),
                ("shipping_price", models.PositiveBigIntegerField(default=0)),
                (
                    "settlement_amount",
                    models.BigIntegerField(
                        help_text="Amount credited to the store wallet on release"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("ready", "Ready"),
                            ("processing", "Processing"),
                            ("released", "Released"),
                            ("failed", "Failed"),
                            ("reversed", "Reversed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Release state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "trigger",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("time_elapsed", "Return Window Elapsed"),
                            ("delivery_confirmed", "Delivery Confirmed"),
                            ("auto_confirmed_delivery", "Auto Confirmed Delivery"),
                            ("admin_approved", "Admin Approved"),
                            ("order_cancelled", "Order Cancelled"),
                            ("return_completed", "Return Completed"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
                ("store_verified", models.BooleanField(default=False)),
                ("delivery_confirmed", models.BooleanField(default=False)),
                ("delivery_confirmed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "scheduled_release_time",
                    models.DateTimeField(
                        db_index=True,
                        help_text="Earliest time the scheduler may release (return window end)",
                    ),
                ),
                ("actual_released_at", models.DateTimeField(blank=True, null=True)),
                ("failure_count", models.PositiveIntegerField(default=0)),
                ("last_failed_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("admin_notes", models.TextField(blank=True, default="")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fund_releases",
                        to="settlement.order",
                    ),
                ),
                (
                    "sub_order",
                    models.OneToOneField(
                        help_text="At most one fund release per sub-order",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fund_release",
                        to="settlement.suborder",
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fund_releases",
                        to="settlement.store",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fund_releases",
                        to="settlement.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Fund Release",
                "verbose_name_plural": "Fund Releases",
                "ordering": ["-created_at"],
                "permissions": [
                    ("reverse_fund_release", "Can reverse a released fund release"),
                    ("view_all_fund_releases", "Can list fund releases across stores"),
                ],
                "indexes": [
                    models.Index(
                        fields=["store", "status"],
                        name="settlement__store_i_7c40d2_idx",
                    ),
                    models.Index(
                        fields=["order", "sub_order"],
                        name="settlement__order_i_b36e18_idx",
                    ),
                    models.Index(
                        fields=["scheduled_release_time", "status"],
                        name="settlement__schedul_0fa9c4_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WithdrawalRequest",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True, help_text="Timestamp when this record was last modified"
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "request_number",
                    models.CharField(
                        help_text="Public reference (WDR-XXXXXXXX)", max_length=20, unique=True
                    ),
                ),
                ("requested_amount", models.PositiveBigIntegerField()),
                ("processing_fee", models.PositiveBigIntegerField()),
                ("net_amount", models.PositiveBigIntegerField()),
                (
                    "bank_details",
                    models.JSONField(
                        default=dict,
                        help_text="Snapshot of the payout account at request time",
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("under_review", "Under Review"),
                            ("approved", "Approved"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("rejected", "Rejected"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Review state (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("status_history", models.JSONField(blank=True, default=list)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("review_notes", models.TextField(blank=True, default="")),
                ("rejection_reason", models.TextField(blank=True, default="")),
                (
                    "transaction_reference",
                    models.CharField(blank=True, default="", max_length=100),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.CharField(blank=True, default="", max_length=255)),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reviewed_withdrawals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "store",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawal_requests",
                        to="settlement.store",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawal_requests",
                        to="settlement.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Withdrawal Request",
                "verbose_name_plural": "Withdrawal Requests",
                "ordering": ["-created_at"],
                "permissions": [
                    ("review_withdrawal", "Can approve, reject and settle withdrawals"),
                ],
                "indexes": [
                    models.Index(
                        fields=["store", "status"],
                        name="settlement__store_i_e5a871_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="settlement__status_3d9b6f_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("net_amount__gt", 0)),
                        name="withdrawal_net_amount_positive",
                    )
                ],
            },
        ),
    ]
