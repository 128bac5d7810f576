from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    """Admin interface for Coupon model."""
    list_display = ['code', 'discount_type', 'discount_value', 'usage_count', 'usage_limit',
                    'start_date', 'end_date', 'is_active']
    list_filter = ['discount_type', 'is_active']
    search_fields = ['code', 'description']
    readonly_fields = ['usage_count', 'created_at', 'updated_at']
