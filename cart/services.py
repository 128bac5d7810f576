"""
Cart read/clear interface consumed by checkout and payment confirmation.
"""

import logging
from typing import List, Optional

from catalog.refs import CartLine, item_ref

from .models import Cart, CartItem

logger = logging.getLogger(__name__)


def _owner_filter(user=None, session_key: Optional[str] = None):
    if user is not None and getattr(user, 'is_authenticated', False):
        return {'cart__user': user}
    if session_key:
        return {'cart__session_key': session_key}
    return None


def get_cart_lines(user=None, session_key: Optional[str] = None) -> List[CartLine]:
    """Return the lines of the caller's cart, or an empty list if there is none."""
    owner = _owner_filter(user, session_key)
    if owner is None:
        return []

    items = CartItem.objects.filter(**owner).order_by('added_at')
    return [
        CartLine(
            item=item_ref(product_id=item.product_id, prebuilt_pc_id=item.prebuilt_pc_id),
            quantity=item.quantity,
            variation_id=item.variation_id,
        )
        for item in items
    ]


def clear_cart(user=None, session_key: Optional[str] = None) -> int:
    """
    Remove every item from the cart owned by the user or cart session.

    Returns:
        int: number of cart items deleted
    """
    owner = _owner_filter(user, session_key)
    if owner is None:
        return 0
    deleted, _ = CartItem.objects.filter(**owner).delete()
    if deleted:
        logger.info(f"Cleared {deleted} cart item(s) for {owner}")
    return deleted


def get_or_create_cart(user=None, session_key: Optional[str] = None) -> Cart:
    if user is not None and getattr(user, 'is_authenticated', False):
        cart, _ = Cart.objects.get_or_create(user=user)
        return cart
    if not session_key:
        raise ValueError("A user or a cart session key is required.")
    cart, _ = Cart.objects.get_or_create(session_key=session_key)
    return cart
