from django.contrib import admin

from .models import InventoryMovement, Order, OrderItem, OrderTimelineEntry, ShipmentTask


class ReadOnlyInline(admin.TabularInline):
    extra = 0
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False


class OrderItemInline(ReadOnlyInline):
    model = OrderItem
    fields = ['name', 'sku', 'variation_name', 'unit_price', 'quantity', 'line_total']
    readonly_fields = fields


class OrderTimelineInline(ReadOnlyInline):
    model = OrderTimelineEntry
    fields = ['status', 'title', 'description', 'location', 'created_at']
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Admin interface for Order model.

    Status changes go through the API so that every change is recorded on
    the timeline; here money and status fields are read-only.
    """
    list_display = ['order_number', 'user', 'status', 'payment_status', 'payment_method', 'total', 'created_at']
    list_filter = ['status', 'payment_status', 'payment_method', 'created_at']
    search_fields = ['order_number', 'user__username', 'user__email', 'gateway_order_id', 'awb_number']
    readonly_fields = [
        'order_number', 'user', 'cart_session_key', 'idempotency_key',
        'status', 'payment_status', 'payment_method',
        'subtotal', 'discount', 'coupon_discount', 'shipping_charge', 'tax', 'total',
        'coupon', 'coupon_code', 'shipping_address', 'billing_address',
        'gateway_order_id', 'gateway_payment_id', 'gateway_signature',
        'carrier_order_id', 'shipment_id',
        'created_at', 'updated_at', 'paid_at', 'shipped_at', 'delivered_at', 'cancelled_at',
    ]
    inlines = [OrderItemInline, OrderTimelineInline]


@admin.register(InventoryMovement)
class InventoryMovementAdmin(admin.ModelAdmin):
    list_display = ['order', 'kind', 'created_at']
    list_filter = ['kind']
    search_fields = ['order__order_number']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(ShipmentTask)
class ShipmentTaskAdmin(admin.ModelAdmin):
    list_display = ['order', 'status', 'attempts', 'next_attempt_at', 'updated_at']
    list_filter = ['status']
    search_fields = ['order__order_number']
    readonly_fields = ['order', 'attempts', 'locked_until', 'last_error', 'created_at', 'updated_at']
