from django.contrib import admin

from .models import PrebuiltPC, Product, ProductVariation


class ProductVariationInline(admin.TabularInline):
    model = ProductVariation
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    """Admin interface for Product model."""
    list_display = ['name', 'sku', 'price', 'stock_quantity', 'is_in_stock', 'is_active']
    list_filter = ['is_active', 'is_in_stock']
    search_fields = ['name', 'sku', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ProductVariationInline]


@admin.register(PrebuiltPC)
class PrebuiltPCAdmin(admin.ModelAdmin):
    """Admin interface for PrebuiltPC model."""
    list_display = ['name', 'selling_price', 'is_in_stock', 'is_active']
    list_filter = ['is_active', 'is_in_stock']
    search_fields = ['name', 'slug']
    prepopulated_fields = {'slug': ('name',)}
    readonly_fields = ['created_at', 'updated_at']
