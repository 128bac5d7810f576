"""
Inventory ledger: the only code that changes product stock for orders.

Commit and restore are each one transaction, recorded as an
InventoryMovement so that repeating either for the same order is a no-op.
"""

import logging
from collections import Counter
from typing import Dict, Iterable

from django.db import IntegrityError, transaction
from django.db.models import F

from catalog.models import Product
from catalog.refs import ProductRef
from catalog.services import ResolvedLine

from .exceptions import InventoryConflict, OutOfStock
from .models import InventoryMovement, Order

logger = logging.getLogger(__name__)


def _product_quantities(order: Order) -> Dict[int, int]:
    quantities = Counter()
    for item in order.items.filter(product__isnull=False):
        quantities[item.product_id] += item.quantity
    return dict(sorted(quantities.items()))


class InventoryLedger:

    def reserve(self, lines: Iterable[ResolvedLine]) -> None:
        """
        Non-binding availability check against current stock.

        Quantities of the same product on several lines are added up before
        comparing. Nothing is written.

        Raises:
            OutOfStock: when any product cannot cover the requested quantity
        """
        wanted = Counter()
        for line in lines:
            if not line.entry.is_in_stock:
                raise OutOfStock(f"{line.entry.name} is out of stock.")
            if isinstance(line.ref, ProductRef):
                wanted[line.ref.id] += line.quantity

        if not wanted:
            return

        stock = dict(Product.objects.filter(pk__in=wanted).values_list('pk', 'stock_quantity'))
        for product_id, quantity in wanted.items():
            if stock.get(product_id, 0) < quantity:
                raise OutOfStock(
                    "One or more items are out of stock or have insufficient quantity.",
                    product_id=product_id,
                )

    def commit(self, order: Order) -> bool:
        """
        Decrement stock for every product line of the order.

        Each product is decremented with a single conditional UPDATE
        (``stock_quantity >= qty``). If any line cannot be covered the whole
        commit rolls back and InventoryConflict is raised.

        Returns:
            bool: False when the order had already been committed
        """
        quantities = _product_quantities(order)

        with transaction.atomic():
            try:
                with transaction.atomic():
                    InventoryMovement.objects.create(
                        order=order,
                        kind=InventoryMovement.Kind.COMMIT,
                        lines=[{'product_id': pk, 'quantity': qty} for pk, qty in quantities.items()],
                    )
            except IntegrityError:
                logger.info(f"Inventory already committed for order {order.order_number}")
                return False

            for product_id, quantity in quantities.items():
                updated = Product.objects.filter(
                    pk=product_id, stock_quantity__gte=quantity,
                ).update(stock_quantity=F('stock_quantity') - quantity)
                if not updated:
                    raise InventoryConflict(
                        f"Insufficient stock for product {product_id} on order {order.order_number}.",
                        product_id=product_id,
                        order_number=order.order_number,
                    )

            Product.objects.filter(pk__in=list(quantities), stock_quantity=0).update(is_in_stock=False)

        logger.info(f"Inventory committed for order {order.order_number}: {quantities}")
        return True

    def restore(self, order: Order) -> bool:
        """
        Give back the stock taken by the order's commit.

        Only orders with a commit are restored, and only once.

        Returns:
            bool: True when stock was restored by this call
        """
        with transaction.atomic():
            commit = InventoryMovement.objects.filter(
                order=order, kind=InventoryMovement.Kind.COMMIT,
            ).first()
            if commit is None:
                return False

            try:
                with transaction.atomic():
                    InventoryMovement.objects.create(
                        order=order,
                        kind=InventoryMovement.Kind.RESTORE,
                        lines=commit.lines,
                    )
            except IntegrityError:
                logger.info(f"Inventory already restored for order {order.order_number}")
                return False

            for line in commit.lines:
                Product.objects.filter(pk=line['product_id']).update(
                    stock_quantity=F('stock_quantity') + line['quantity'],
                )
            Product.objects.filter(
                pk__in=[line['product_id'] for line in commit.lines], stock_quantity__gt=0,
            ).update(is_in_stock=True)

        logger.info(f"Inventory restored for order {order.order_number}")
        return True
