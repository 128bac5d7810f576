"""
Order models for the storefront.

This module defines the order aggregate and its bookkeeping records:
- Order: header with status, payment status, money fields and snapshots
- OrderItem: price snapshot of one purchased product or prebuilt PC
- OrderTimelineEntry: append-only, customer-facing status history
- InventoryMovement: one row per stock commit/restore, keyed by order
- ShipmentTask: outbox row driving carrier registration with retries
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


def generate_order_number() -> str:
    return f"ORD-{timezone.now().strftime('%Y%m%d')}-{uuid.uuid4().hex[:10].upper()}"


def _money_field(help_text):
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=help_text,
    )


class OrderQuerySet(models.QuerySet):

    def for_customer(self, user):
        return self.filter(user=user)

    def coupon_uses_by(self, user, code) -> int:
        """Orders by this customer that used the coupon and were not cancelled or refunded."""
        return self.filter(user=user, coupon_code__iexact=code).exclude(
            status__in=[Order.OrderStatus.CANCELLED, Order.OrderStatus.REFUNDED],
        ).count()


class Order(models.Model):
    """
    A customer purchase.

    Money Considerations:
    - All amounts are non-negative DecimalFields
    - total is always recomputed on save from its components:
      subtotal - discount - coupon_discount + shipping_charge + tax
    - Address snapshots are copied at checkout and cannot change afterwards
    """

    class OrderStatus(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        CONFIRMED = 'CONFIRMED', _('Confirmed')
        PROCESSING = 'PROCESSING', _('Processing')
        SHIPPED = 'SHIPPED', _('Shipped')
        OUT_FOR_DELIVERY = 'OUT_FOR_DELIVERY', _('Out for delivery')
        DELIVERED = 'DELIVERED', _('Delivered')
        CANCELLED = 'CANCELLED', _('Cancelled')
        RETURNED = 'RETURNED', _('Returned')
        REFUNDED = 'REFUNDED', _('Refunded')

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        COD_PENDING = 'COD_PENDING', _('Cash on delivery pending')
        PAID = 'PAID', _('Paid')
        FAILED = 'FAILED', _('Failed')
        REFUNDED = 'REFUNDED', _('Refunded')

    class PaymentMethod(models.TextChoices):
        ONLINE = 'ONLINE', _('Online')
        CASH_ON_DELIVERY = 'CASH_ON_DELIVERY', _('Cash on delivery')

    order_number = models.CharField(
        max_length=50,
        unique=True,
        default=generate_order_number,
        editable=False,
        help_text=_("Unique order identifier for customer reference"),
    )

    # Null for guest checkouts
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='orders',
    )
    cart_session_key = models.CharField(
        max_length=100,
        blank=True,
        help_text=_("Anonymous cart the order was placed from; cleared on confirmation"),
    )
    idempotency_key = models.CharField(
        max_length=100,
        unique=True,
        null=True,
        blank=True,
        help_text=_("Client-supplied key that makes checkout retries return the same order"),
    )

    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)

    subtotal = _money_field(_("Sum of all order items"))
    discount = _money_field(_("Non-coupon discount (manual adjustments)"))
    coupon_discount = _money_field(_("Discount granted by the applied coupon"))
    shipping_charge = _money_field(_("Shipping and handling charge"))
    tax = _money_field(_("Tax on the discounted subtotal"))
    total = _money_field(_("Amount payable"))

    coupon = models.ForeignKey(
        'coupons.Coupon',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='orders',
    )
    coupon_code = models.CharField(max_length=50, blank=True)

    shipping_address = models.JSONField(help_text=_("Shipping address snapshot taken at checkout"))
    billing_address = models.JSONField(
        null=True,
        blank=True,
        help_text=_("Billing address snapshot; shipping address applies when empty"),
    )

    # Payment gateway correlation
    gateway_order_id = models.CharField(max_length=100, blank=True, db_index=True)
    gateway_payment_id = models.CharField(max_length=100, blank=True)
    gateway_signature = models.CharField(max_length=255, blank=True)

    # Carrier correlation
    carrier_order_id = models.CharField(max_length=100, blank=True)
    shipment_id = models.CharField(max_length=100, blank=True)
    awb_number = models.CharField(max_length=100, blank=True)
    courier_name = models.CharField(max_length=100, blank=True)
    tracking_url = models.URLField(blank=True)

    customer_notes = models.TextField(blank=True)
    admin_notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    objects = OrderQuerySet.as_manager()

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'created_at'], name='orders_user_created_idx'),
            models.Index(fields=['status', 'created_at'], name='orders_status_created_idx'),
        ]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")

    def __str__(self):
        return f"Order {self.order_number} - {self.total}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        if 'shipping_address' in field_names and 'billing_address' in field_names:
            instance._loaded_addresses = (instance.shipping_address, instance.billing_address)
        return instance

    @property
    def is_cash_on_delivery(self) -> bool:
        return self.payment_method == self.PaymentMethod.CASH_ON_DELIVERY

    def calculate_total(self) -> Decimal:
        """
        Calculate total amount from its components.

        Returns:
            Decimal: subtotal - discount - coupon_discount + shipping_charge + tax
        """
        return self.subtotal - self.discount - self.coupon_discount + self.shipping_charge + self.tax

    def save(self, *args, **kwargs):
        """
        Recompute total and refuse to rewrite address snapshots.
        """
        loaded = getattr(self, '_loaded_addresses', None)
        if loaded is not None and loaded != (self.shipping_address, self.billing_address):
            raise ValueError("Order address snapshots are immutable once placed.")
        self.total = self.calculate_total()
        super().save(*args, **kwargs)

    def can_be_cancelled(self) -> bool:
        from .state_machine import can_cancel
        return can_cancel(self.status)


class OrderItem(models.Model):
    """
    One purchased product or prebuilt PC with its price at order time.

    unit_price is a snapshot: later catalog price changes do not touch it.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')

    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='order_items',
    )
    prebuilt_pc = models.ForeignKey(
        'catalog.PrebuiltPC',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='order_items',
    )
    variation = models.ForeignKey(
        'catalog.ProductVariation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='order_items',
    )

    name = models.CharField(max_length=200)
    sku = models.CharField(max_length=220, blank=True)
    variation_name = models.CharField(max_length=120, blank=True)

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Price per unit at time of order (snapshot)"),
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    line_total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text=_("unit_price x quantity"),
    )

    class Meta:
        ordering = ['id']
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(product__isnull=False, prebuilt_pc__isnull=True)
                    | Q(product__isnull=True, prebuilt_pc__isnull=False)
                ),
                name='order_item_single_target',
            ),
            models.CheckConstraint(condition=Q(quantity__gte=1), name='order_item_quantity_positive'),
        ]

    def __str__(self):
        return f"{self.quantity}x {self.name} in Order {self.order.order_number}"

    def calculate_line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def save(self, *args, **kwargs):
        self.line_total = self.calculate_line_total()
        super().save(*args, **kwargs)


class OrderTimelineEntry(models.Model):
    """
    Append-only status history entry shown to the customer.

    Entries are never edited or deleted individually; they go away only
    with their order.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='timeline')
    status = models.CharField(max_length=20, choices=Order.OrderStatus.choices)
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    location = models.CharField(max_length=200, blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name = _("Order timeline entry")
        verbose_name_plural = _("Order timeline entries")

    def __str__(self):
        return f"{self.order.order_number}: {self.title}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Timeline entries are append-only.")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Timeline entries are append-only.")


class InventoryMovement(models.Model):
    """
    Record that an order's stock was committed or restored.

    The (order, kind) uniqueness is what makes commit and restore happen at
    most once per order.
    """

    class Kind(models.TextChoices):
        COMMIT = 'COMMIT', _('Commit')
        RESTORE = 'RESTORE', _('Restore')

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='inventory_movements')
    kind = models.CharField(max_length=10, choices=Kind.choices)
    lines = models.JSONField(default=list, help_text=_("[{product_id, quantity}] applied"))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['order', 'kind'], name='inventory_movement_once_per_order'),
        ]

    def __str__(self):
        return f"{self.kind} for {self.order.order_number}"


class ShipmentTask(models.Model):
    """
    Pending carrier registration for a confirmed order.

    Written in the same transaction that confirms the order, then worked off
    by the shipment dispatcher with capped exponential backoff.
    """

    class Status(models.TextChoices):
        PENDING = 'PENDING', _('Pending')
        IN_PROGRESS = 'IN_PROGRESS', _('In progress')
        DONE = 'DONE', _('Done')
        FAILED = 'FAILED', _('Failed')

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='shipment_task')
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    attempts = models.PositiveIntegerField(default=0)
    next_attempt_at = models.DateTimeField(default=timezone.now, db_index=True)
    locked_until = models.DateTimeField(null=True, blank=True)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['next_attempt_at']

    def __str__(self):
        return f"Shipment for {self.order.order_number} [{self.status}]"
