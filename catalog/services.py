"""
Read interface over the catalog used by checkout.

Checkout never trusts client-sent prices or stock flags: every line is
re-resolved here against the current catalog rows.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .models import PrebuiltPC, Product, ProductVariation
from .refs import CartLine, ItemRef, PrebuiltPCRef, ProductRef


class CatalogItemNotFound(Exception):
    """Raised when a referenced product, prebuilt PC or variation does not exist or is inactive."""

    def __init__(self, ref, message=None):
        self.ref = ref
        super().__init__(message or f"{ref.kind} {ref.id} not found")


@dataclass(frozen=True)
class CatalogEntry:
    """Current price and availability of one catalog item."""
    ref: ItemRef
    name: str
    sku: str
    price: Decimal
    is_in_stock: bool
    # None for items sold against the availability flag only
    available_stock: Optional[int]
    weight_kg: Optional[Decimal] = None


@dataclass(frozen=True)
class ResolvedLine:
    """A cart line joined with current catalog state."""
    entry: CatalogEntry
    quantity: int
    variation_id: Optional[int] = None
    variation_name: Optional[str] = None

    @property
    def ref(self) -> ItemRef:
        return self.entry.ref

    @property
    def unit_price(self) -> Decimal:
        return self.entry.price


def get_product(ref: ItemRef) -> CatalogEntry:
    """Look up the current price and stock for a product or prebuilt PC."""
    if isinstance(ref, ProductRef):
        try:
            product = Product.objects.get(pk=ref.id, is_active=True)
        except Product.DoesNotExist:
            raise CatalogItemNotFound(ref)
        return CatalogEntry(
            ref=ref,
            name=product.name,
            sku=product.sku,
            price=product.price,
            is_in_stock=product.is_in_stock,
            available_stock=product.stock_quantity,
            weight_kg=product.weight_kg,
        )

    if isinstance(ref, PrebuiltPCRef):
        try:
            pc = PrebuiltPC.objects.get(pk=ref.id, is_active=True)
        except PrebuiltPC.DoesNotExist:
            raise CatalogItemNotFound(ref)
        return CatalogEntry(
            ref=ref,
            name=pc.name,
            sku=pc.slug,
            price=pc.selling_price,
            is_in_stock=pc.is_in_stock,
            available_stock=None,
            weight_kg=pc.weight_kg,
        )

    raise TypeError(f"Unsupported item reference: {ref!r}")


def resolve_line(line: CartLine) -> ResolvedLine:
    """Join a cart line with current catalog state, applying any variation price."""
    entry = get_product(line.item)
    variation_name = None

    if line.variation_id is not None:
        if not isinstance(line.item, ProductRef):
            raise CatalogItemNotFound(line.item, "Variations apply to products only")
        try:
            variation = ProductVariation.objects.get(
                pk=line.variation_id, product_id=line.item.id, is_active=True,
            )
        except ProductVariation.DoesNotExist:
            raise CatalogItemNotFound(line.item, f"Variation {line.variation_id} not found")
        variation_name = variation.name
        if variation.price is not None:
            entry = CatalogEntry(
                ref=entry.ref,
                name=entry.name,
                sku=entry.sku,
                price=variation.price,
                is_in_stock=entry.is_in_stock,
                available_stock=entry.available_stock,
                weight_kg=entry.weight_kg,
            )

    return ResolvedLine(
        entry=entry,
        quantity=line.quantity,
        variation_id=line.variation_id,
        variation_name=variation_name,
    )
