"""
Shopping cart models.

A cart belongs either to a signed-in user or to an anonymous cart session
(identified by the cart_session_id cookie).
"""

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Cart(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='cart',
    )
    session_key = models.CharField(max_length=100, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=models.Q(user__isnull=False) | models.Q(session_key__isnull=False),
                name='cart_has_owner',
            ),
        ]

    def __str__(self):
        owner = self.user.email if self.user else self.session_key
        return f"Cart of {owner}"


class CartItem(models.Model):
    """One line in a cart; references a product or a prebuilt PC, never both."""

    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(
        'catalog.Product',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='cart_items',
    )
    prebuilt_pc = models.ForeignKey(
        'catalog.PrebuiltPC',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='cart_items',
    )
    variation = models.ForeignKey(
        'catalog.ProductVariation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cart_items',
    )
    quantity = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['added_at']
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(product__isnull=False, prebuilt_pc__isnull=True)
                    | models.Q(product__isnull=True, prebuilt_pc__isnull=False)
                ),
                name='cart_item_single_target',
            ),
        ]

    def __str__(self):
        target = self.product or self.prebuilt_pc
        return f"{self.quantity}x {target}"
