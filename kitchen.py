"""
Kitchen order workflow and order-ready reconciliation.

Orders move New -> Preparing -> Ready, and may be Cancelled while New or
Preparing. Ready and Cancelled are terminal.

Marking an order Ready is a single transaction:
  1. pre-check every recipe ingredient against stock, no writes
  2. claim the order (guarded status update)
  3. compare-and-deduct each ingredient, accumulating cost of goods
  4. record one sale per order line
Any failure rolls the whole transaction back.
"""
import logging
from datetime import datetime

from errors import (
    InsufficientStockError,
    InvalidStateError,
    MissingRecipeError,
    NotFoundError,
    ValidationError,
)
from models import KitchenOrder, KitchenOrderItem, OrderStatus, Sale, TransactionType
from repositories import (
    AuditRepository,
    CatalogRepository,
    InventoryRepository,
    LedgerRepository,
    OrderRepository,
    round_quantity,
)

logger = logging.getLogger(__name__)


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def validate_order_lines(items):
    """Return [(menu_item_id, quantity), ...] or raise ValidationError."""
    if not isinstance(items, list) or not items:
        raise ValidationError('Order must contain items.')

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f'Order line {index + 1} must be an object.')
        menu_item_id = item.get('menu_item_id')
        quantity = item.get('quantity')
        if not _is_int(menu_item_id):
            raise ValidationError(f'Order line {index + 1}: menu_item_id must be an integer.')
        if not _is_int(quantity) or quantity <= 0:
            raise ValidationError(f'Order line {index + 1}: quantity must be a positive integer.')
        lines.append((menu_item_id, quantity))
    return lines


def _shortage(menu_item_name, required, available, ingredient=None, ingredient_id=None):
    if ingredient is None:
        return {
            'ingredient_id': ingredient_id,
            'ingredient': None,
            'menu_item': menu_item_name,
            'required': required,
            'available': 0,
            'unit': None,
            'message': f'Ingredient with ID {ingredient_id} for "{menu_item_name}" not found.',
        }
    return {
        'ingredient_id': ingredient.id,
        'ingredient': ingredient.name,
        'menu_item': menu_item_name,
        'required': required,
        'available': available,
        'unit': ingredient.unit,
        'message': (
            f'Insufficient stock for "{ingredient.name}" (needed for "{menu_item_name}"). '
            f'Needed: {required:.2f} {ingredient.unit}, '
            f'Available: {available:.2f} {ingredient.unit}.'
        ),
    }


class KitchenWorkflow:
    def __init__(self, session, notifier=None, allow_uncosted_sales=True,
                 default_payment_method='Kitchen Order', low_stock_threshold=0, actor='system'):
        self.session = session
        self.notifier = notifier
        self.allow_uncosted_sales = allow_uncosted_sales
        self.default_payment_method = default_payment_method
        self.low_stock_threshold = low_stock_threshold
        self.actor = actor

        self.catalog = CatalogRepository(session)
        self.inventory = InventoryRepository(session)
        self.orders = OrderRepository(session)
        self.ledger = LedgerRepository(session)
        self.audit = AuditRepository(session)

    @classmethod
    def from_config(cls, session, config, notifier=None, actor='system'):
        return cls(
            session,
            notifier=notifier,
            allow_uncosted_sales=config.get('ALLOW_UNCOSTED_SALES', True),
            default_payment_method=config.get('DEFAULT_PAYMENT_METHOD', 'Kitchen Order'),
            low_stock_threshold=config.get('LOW_STOCK_THRESHOLD', 0),
            actor=actor,
        )

    # Order placement and simple transitions

    def place_order(self, items, notes=None):
        lines = validate_order_lines(items)

        order = KitchenOrder(status=OrderStatus.NEW, notes=notes)
        total_amount = 0
        try:
            for menu_item_id, quantity in lines:
                menu_item = self.catalog.get_menu_item(menu_item_id)
                order.items.append(KitchenOrderItem(
                    menu_item_id=menu_item.id,
                    menu_item_name=menu_item.name,
                    price=menu_item.price,
                    quantity=quantity,
                ))
                total_amount += menu_item.price * quantity
            order.total_amount = total_amount
            self.orders.add(order)
            self.audit.record(self.actor, 'order_placed',
                              f'Order {order.id}: {len(lines)} line(s), total {total_amount:.2f}')
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Order %s placed with %d line(s), total %.2f", order.id, len(lines), total_amount)
        return order

    def start_preparing(self, order_id):
        try:
            order = self.orders.get(order_id)
            if order.status != OrderStatus.NEW:
                raise InvalidStateError(f'Order is {order.status}. Only New orders can start preparing.')
            if not self.orders.transition(order_id, (OrderStatus.NEW,), OrderStatus.PREPARING):
                raise InvalidStateError(f'Order {order_id} changed state concurrently.')
            self.audit.record(self.actor, 'order_preparing', f'Order {order_id} is being prepared')
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return order

    def cancel_order(self, order_id):
        try:
            order = self.orders.get(order_id)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidStateError(f'Order is already {order.status}. Cannot cancel.')
            if not self.orders.transition(order_id, OrderStatus.OPEN, OrderStatus.CANCELLED):
                raise InvalidStateError(f'Order {order_id} changed state concurrently. Cannot cancel.')
            self.audit.record(self.actor, 'order_cancelled', f'Order {order_id} cancelled')
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Order %s cancelled", order_id)
        return order

    # Reconciliation

    def mark_ready(self, order_id, payment_method=None):
        """
        Mark an order Ready: deduct recipe stock, record sales.

        Returns ``(order, sales)``. Raises NotFoundError, InvalidStateError,
        MissingRecipeError or InsufficientStockError with nothing written.
        """
        try:
            order = self.orders.get(order_id)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidStateError(f'Order is already {order.status}. Cannot mark ready.')

            planned = self._precheck(order)
            sales, touched = self._commit(order, planned, payment_method or self.default_payment_method)
            self.audit.record(
                self.actor, 'order_ready',
                f'Order {order_id} ready: {len(sales)} sale(s), '
                f'revenue {sum(s.amount for s in sales):.2f}, '
                f'cost of goods {sum(s.cost_of_goods for s in sales):.2f}',
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Order %s marked ready, %d sale(s) recorded", order_id, len(sales))
        self._notify_low_stock(touched)
        return order, sales

    def _precheck(self, order):
        """
        Resolve every recipe and verify stock without writing anything.

        Availability is a running balance per ingredient, so two lines that
        share an ingredient are checked against the stock they would
        jointly consume.
        """
        planned = []
        shortages = []
        remaining = {}

        for line in order.items:
            menu_item = self.catalog.find_menu_item(line.menu_item_id)
            if menu_item is None:
                raise NotFoundError(
                    f'Menu item with ID {line.menu_item_id} ("{line.menu_item_name}") not found.'
                )
            if not menu_item.recipe:
                if not self.allow_uncosted_sales:
                    raise MissingRecipeError(f'No recipe defined for menu item "{menu_item.name}".')
                logger.warning(
                    'No recipe defined for menu item "%s"; recording sale with zero cost.', menu_item.name
                )

            draws = []
            for recipe_line in menu_item.recipe:
                required = round_quantity(recipe_line.quantity_required * line.quantity)
                ingredient = self.inventory.find_ingredient(recipe_line.ingredient_id)
                if ingredient is None:
                    shortages.append(_shortage(menu_item.name, required, 0, ingredient_id=recipe_line.ingredient_id))
                    continue

                available = remaining.get(ingredient.id, round_quantity(ingredient.current_stock))
                if available < required:
                    shortages.append(_shortage(menu_item.name, required, available, ingredient=ingredient))
                    continue
                remaining[ingredient.id] = round_quantity(available - required)
                draws.append((ingredient, required))
            planned.append((line, draws))

        if shortages:
            logger.info("Order %s blocked by %d shortage(s)", order.id, len(shortages))
            raise InsufficientStockError(shortages)
        return planned

    def _commit(self, order, planned, payment_method):
        now = datetime.utcnow()
        if not self.orders.transition(order.id, OrderStatus.OPEN, OrderStatus.READY, completed_at=now):
            raise InvalidStateError(f'Order {order.id} changed state concurrently. Cannot mark ready.')

        sales = []
        touched = {}
        for line, draws in planned:
            cost_of_goods = 0
            for ingredient, required in draws:
                if not self.inventory.try_deduct(ingredient.id, required):
                    # drained by another transaction after the pre-check
                    available = self.inventory.current_stock(ingredient.id)
                    if available is None:
                        shortage = _shortage(line.menu_item_name, required, 0, ingredient_id=ingredient.id)
                    else:
                        shortage = _shortage(line.menu_item_name, required, available, ingredient=ingredient)
                    raise InsufficientStockError([shortage])
                cost_of_goods += required * (ingredient.cost_per_unit or 0)
                self.inventory.record_transaction(
                    ingredient.id,
                    TransactionType.USAGE,
                    required,
                    notes=f'Used for {line.quantity} x {line.menu_item_name}',
                    order_id=order.id,
                )
                touched[ingredient.id] = ingredient

            amount = line.price * line.quantity
            sales.append(self.ledger.add_sale(Sale(
                date=now,
                item_sold=line.menu_item_name,
                quantity=line.quantity,
                amount=amount,
                cost_of_goods=cost_of_goods,
                profit=amount - cost_of_goods,
                payment_method=payment_method,
                order_id=order.id,
            )))

        self.session.flush()
        return sales, list(touched.values())

    def _notify_low_stock(self, ingredients):
        if self.notifier is None:
            return
        for ingredient in ingredients:
            threshold = ingredient.min_stock or self.low_stock_threshold
            if threshold and ingredient.current_stock < threshold:
                try:
                    self.notifier.notify(ingredient, threshold)
                except Exception:
                    logger.exception("Low-stock notification for %s failed", ingredient.name)
