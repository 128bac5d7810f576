"""
Order serializers for the storefront API.

Request serializers only check shape; prices, stock and totals are always
computed server-side by the checkout orchestrator.
"""

from decimal import Decimal

from rest_framework import serializers

from catalog.refs import CartLine, item_ref

from .models import Order, OrderItem, OrderTimelineEntry


class AddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=200)
    mobile = serializers.RegexField(r'^\+?[0-9 -]{7,20}$', max_length=20)
    address_line1 = serializers.CharField(max_length=255)
    address_line2 = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    landmark = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    pincode = serializers.RegexField(r'^[0-9A-Za-z -]{3,10}$', max_length=10)
    country = serializers.CharField(max_length=100, required=False, default='India')


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(required=False, min_value=1)
    prebuilt_pc_id = serializers.IntegerField(required=False, min_value=1)
    variation_id = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    quantity = serializers.IntegerField(min_value=1, max_value=100)

    def validate(self, attrs):
        """Each line names exactly one of a product or a prebuilt PC."""
        if bool(attrs.get('product_id')) == bool(attrs.get('prebuilt_pc_id')):
            raise serializers.ValidationError("Provide exactly one of 'product_id' or 'prebuilt_pc_id'.")
        if attrs.get('variation_id') and not attrs.get('product_id'):
            raise serializers.ValidationError("Variations apply to products only.")
        return attrs

    def to_cart_line(self, attrs) -> CartLine:
        return CartLine(
            item=item_ref(product_id=attrs.get('product_id'), prebuilt_pc_id=attrs.get('prebuilt_pc_id')),
            quantity=attrs['quantity'],
            variation_id=attrs.get('variation_id'),
        )


class CheckoutRequestSerializer(serializers.Serializer):
    """
    Checkout request body.

    When ``items`` is omitted the caller's server-side cart is used.
    """

    items = CheckoutItemSerializer(many=True, required=False)
    shipping_address = AddressSerializer()
    billing_address = AddressSerializer(required=False, allow_null=True)
    payment_method = serializers.ChoiceField(choices=['COD', 'ONLINE'])
    coupon_code = serializers.CharField(max_length=50, required=False, allow_blank=True)
    notes = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    idempotency_key = serializers.CharField(max_length=100, required=False, allow_blank=True)

    def cart_lines(self):
        items = self.validated_data.get('items')
        if items is None:
            return None
        child = CheckoutItemSerializer()
        return [child.to_cart_line(attrs) for attrs in items]


class PaymentConfirmationSerializer(serializers.Serializer):
    order_id = serializers.IntegerField(min_value=1)
    gateway_order_id = serializers.CharField(max_length=100)
    gateway_payment_id = serializers.CharField(max_length=100)
    signature = serializers.CharField(max_length=255)


class OrderItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = OrderItem
        fields = [
            'id',
            'product',
            'prebuilt_pc',
            'variation',
            'name',
            'sku',
            'variation_name',
            'unit_price',
            'quantity',
            'line_total',
        ]
        read_only_fields = fields


class OrderTimelineEntrySerializer(serializers.ModelSerializer):

    class Meta:
        model = OrderTimelineEntry
        fields = ['status', 'title', 'description', 'location', 'created_at']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    Read-only order representation with items and timeline.

    All changes go through the checkout, confirmation and status endpoints.
    """

    items = OrderItemSerializer(many=True, read_only=True)
    timeline = OrderTimelineEntrySerializer(many=True, read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    payment_status_display = serializers.CharField(source='get_payment_status_display', read_only=True)

    class Meta:
        model = Order
        fields = [
            'id',
            'order_number',
            'status',
            'status_display',
            'payment_status',
            'payment_status_display',
            'payment_method',
            'subtotal',
            'discount',
            'coupon_discount',
            'shipping_charge',
            'tax',
            'total',
            'coupon_code',
            'shipping_address',
            'billing_address',
            'gateway_order_id',
            'awb_number',
            'courier_name',
            'tracking_url',
            'customer_notes',
            'items',
            'timeline',
            'created_at',
            'updated_at',
            'paid_at',
            'shipped_at',
            'delivered_at',
            'cancelled_at',
        ]
        read_only_fields = fields


class OrderStatusUpdateSerializer(serializers.Serializer):
    """
    Staff status change with optional timeline and carrier details.

    Either ``status`` or ``payment_status`` (or both) must be given; payment
    status is how a cash on delivery order is marked paid.
    """

    status = serializers.ChoiceField(choices=Order.OrderStatus.choices, required=False)
    payment_status = serializers.ChoiceField(choices=Order.PaymentStatus.choices, required=False)
    title = serializers.CharField(max_length=200, required=False)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    location = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    awb_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    courier_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    tracking_url = serializers.URLField(required=False, allow_blank=True)
    admin_notes = serializers.CharField(required=False, allow_blank=True)
    append_entry = serializers.BooleanField(required=False, default=False)

    CARRIER_FIELDS = ('awb_number', 'courier_name', 'tracking_url', 'admin_notes')

    def validate(self, attrs):
        if not attrs.get('status') and not attrs.get('payment_status'):
            raise serializers.ValidationError("Provide 'status', 'payment_status' or both.")
        return attrs

    def extra_fields(self):
        return {
            name: self.validated_data[name]
            for name in self.CARRIER_FIELDS
            if name in self.validated_data
        }


class OrderCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class ShippingQuoteSerializer(serializers.Serializer):
    pincode = serializers.RegexField(
        r'^[0-9]{6}$', error_messages={'invalid': 'Valid pincode is required.'},
    )
    weight = serializers.DecimalField(
        max_digits=8, decimal_places=3, min_value=Decimal('0.001'), required=False,
    )
    cod = serializers.BooleanField(required=False, default=False)
    cart_total = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal('0'), required=False, default=Decimal('0'),
    )
