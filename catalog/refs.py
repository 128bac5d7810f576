"""
Typed references to purchasable catalog items.

A cart or order line points at exactly one of a product or a prebuilt PC.
The reference is resolved once, when a line enters checkout, and carried as
a single value through pricing and order-item creation.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ProductRef:
    id: int

    kind = 'product'


@dataclass(frozen=True)
class PrebuiltPCRef:
    id: int

    kind = 'prebuilt_pc'


ItemRef = Union[ProductRef, PrebuiltPCRef]


@dataclass(frozen=True)
class CartLine:
    """A requested quantity of one catalog item, as sent by the client or read from a cart."""
    item: ItemRef
    quantity: int
    variation_id: Optional[int] = None


def item_ref(product_id=None, prebuilt_pc_id=None) -> ItemRef:
    """Build a reference from a pair of optional ids, exactly one of which is set."""
    if bool(product_id) == bool(prebuilt_pc_id):
        raise ValueError("Exactly one of product_id or prebuilt_pc_id is required.")
    if product_id:
        return ProductRef(int(product_id))
    return PrebuiltPCRef(int(prebuilt_pc_id))
