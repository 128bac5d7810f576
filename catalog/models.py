"""
Catalog models for the storefront.

Products (individual computer parts) carry a stock count that only the
order inventory ledger decrements or restores. Prebuilt PCs are assembled to
order and are sold against an availability flag instead of a count.
"""

from decimal import Decimal

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """
    A computer part available for sale.

    Stock Considerations:
    - Prices are Decimal to avoid floating-point drift
    - stock_quantity is never negative (database check constraint)
    - is_in_stock is kept in step with stock_quantity by the inventory ledger,
      and can also be switched off by staff to pause sales
    """

    name = models.CharField(max_length=200, db_index=True)
    slug = models.SlugField(max_length=220, unique=True)
    sku = models.CharField(
        max_length=100,
        unique=True,
        help_text=_("Stock Keeping Unit - unique product identifier"),
    )
    description = models.TextField(blank=True)

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Current selling price in the store currency"),
    )

    stock_quantity = models.PositiveIntegerField(
        default=0,
        help_text=_("Units on hand; written only by the inventory ledger"),
    )
    is_in_stock = models.BooleanField(default=True)
    is_active = models.BooleanField(
        default=True,
        help_text=_("If False, product is hidden from customers but preserved for order history"),
    )

    # Parcel defaults handed to the carrier; blank means the carrier defaults apply
    weight_kg = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(stock_quantity__gte=0),
                name='catalog_product_stock_non_negative',
            ),
        ]
        verbose_name = _("Product")
        verbose_name_plural = _("Products")

    def __str__(self):
        return f"{self.name} (SKU: {self.sku})"


class ProductVariation(models.Model):
    """
    A purchasable variant of a product (capacity, colour, bundle...).

    Stock is counted on the parent product; a variation may override price.
    """

    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='variations',
    )
    name = models.CharField(max_length=120)
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text=_("Overrides the product price when set"),
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['product', 'name']
        unique_together = ['product', 'name']

    def __str__(self):
        return f"{self.product.name} - {self.name}"


class PrebuiltPC(models.Model):
    """A prebuilt PC configuration, sold against an availability flag."""

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True)
    selling_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    is_in_stock = models.BooleanField(default=True)
    is_active = models.BooleanField(default=True)
    weight_kg = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = _("Prebuilt PC")
        verbose_name_plural = _("Prebuilt PCs")

    def __str__(self):
        return self.name
