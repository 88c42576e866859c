"""
Repository objects over the SQLAlchemy session.

The workflow and report code only talk to these classes, never to the
session directly. Nothing here commits: the caller owns the transaction.
"""
from datetime import datetime

from sqlalchemy import case

from errors import NotFoundError
from models import (
    AuditLog,
    Expense,
    Ingredient,
    InventoryTransaction,
    KitchenOrder,
    MenuItem,
    Recipe,
    Sale,
    TransactionType,
)


# Stock quantities are floats; compare them at this precision.
QUANTITY_PLACES = 6
QUANTITY_TOLERANCE = 10 ** -QUANTITY_PLACES


def round_quantity(value):
    return round(value or 0, QUANTITY_PLACES)


def _in_range(query, column, start=None, end=None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


class CatalogRepository:
    def __init__(self, session):
        self.session = session

    def find_menu_item(self, item_id):
        return self.session.get(MenuItem, item_id)

    def get_menu_item(self, item_id):
        item = self.find_menu_item(item_id)
        if item is None:
            raise NotFoundError(f'Menu item with ID {item_id} not found.')
        return item

    def list_menu_items(self, category=None):
        query = self.session.query(MenuItem)
        if category:
            query = query.filter_by(category=category)
        return query.order_by(MenuItem.name).all()

    def add(self, item):
        self.session.add(item)
        self.session.flush()
        return item

    def delete(self, item):
        self.session.delete(item)
        self.session.flush()

    def replace_recipe(self, item, lines):
        """Swap the recipe of ``item`` for ``lines`` [(ingredient_id, quantity_required), ...]."""
        for ingredient_id, _ in lines:
            if self.session.get(Ingredient, ingredient_id) is None:
                raise NotFoundError(f'Ingredient with ID {ingredient_id} not found.')
        item.recipe.clear()
        self.session.flush()
        for position, (ingredient_id, quantity) in enumerate(lines):
            item.recipe.append(Recipe(
                ingredient_id=ingredient_id,
                quantity_required=quantity,
                position=position,
            ))
        self.session.flush()
        return item.recipe

    def recipes_using(self, ingredient_id):
        return self.session.query(Recipe).filter_by(ingredient_id=ingredient_id).all()


class InventoryRepository:
    def __init__(self, session):
        self.session = session

    def find_ingredient(self, ingredient_id):
        return self.session.get(Ingredient, ingredient_id)

    def get_ingredient(self, ingredient_id):
        ingredient = self.find_ingredient(ingredient_id)
        if ingredient is None:
            raise NotFoundError(f'Ingredient with ID {ingredient_id} not found.')
        return ingredient

    def list_ingredients(self):
        return self.session.query(Ingredient).order_by(Ingredient.name).all()

    def low_stock(self):
        return self.session.query(Ingredient).filter(
            Ingredient.current_stock <= Ingredient.min_stock
        ).order_by(Ingredient.name).all()

    def add(self, ingredient):
        self.session.add(ingredient)
        self.session.flush()
        return ingredient

    def has_order_usage(self, ingredient_id):
        """True when stock of this ingredient was consumed by a kitchen order."""
        return self.session.query(InventoryTransaction.id).filter(
            InventoryTransaction.ingredient_id == ingredient_id,
            InventoryTransaction.related_order_id.isnot(None),
        ).first() is not None

    def delete(self, ingredient):
        self.session.query(InventoryTransaction).filter_by(ingredient_id=ingredient.id).delete()
        self.session.delete(ingredient)
        self.session.flush()

    def try_deduct(self, ingredient_id, quantity):
        """
        Atomically deduct ``quantity`` if and only if that much is on hand.

        The stock check lives in the UPDATE's WHERE clause, so two
        transactions can never both take the last units. Returns False when
        no row matched (missing ingredient or not enough stock).

        Float noise up to QUANTITY_TOLERANCE is forgiven and the result is
        clamped at zero.
        """
        remaining = Ingredient.current_stock - quantity
        matched = self.session.query(Ingredient).filter(
            Ingredient.id == ingredient_id,
            Ingredient.current_stock >= quantity - QUANTITY_TOLERANCE,
        ).update(
            {Ingredient.current_stock: case((remaining < 0, 0), else_=remaining)},
            synchronize_session='fetch',
        )
        return matched == 1

    def current_stock(self, ingredient_id):
        """Stock as stored right now, or None when the ingredient is gone."""
        return self.session.query(Ingredient.current_stock).filter(
            Ingredient.id == ingredient_id
        ).scalar()

    def restock(self, ingredient, quantity, notes=None):
        ingredient.current_stock = (ingredient.current_stock or 0) + quantity
        ingredient.last_restocked = datetime.utcnow()
        self.session.add(InventoryTransaction(
            ingredient_id=ingredient.id,
            transaction_type=TransactionType.PURCHASE,
            quantity=quantity,
            notes=notes,
        ))
        self.session.flush()
        return ingredient

    def record_transaction(self, ingredient_id, transaction_type, quantity, notes=None, order_id=None):
        transaction = InventoryTransaction(
            ingredient_id=ingredient_id,
            transaction_type=transaction_type,
            quantity=quantity,
            notes=notes,
            related_order_id=order_id,
        )
        self.session.add(transaction)
        return transaction

    def list_transactions(self, ingredient_id=None, transaction_type=None):
        query = self.session.query(InventoryTransaction)
        if ingredient_id is not None:
            query = query.filter_by(ingredient_id=ingredient_id)
        if transaction_type:
            query = query.filter_by(transaction_type=transaction_type)
        return query.order_by(
            InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc()
        ).all()


class OrderRepository:
    def __init__(self, session):
        self.session = session

    def find(self, order_id):
        return self.session.get(KitchenOrder, order_id)

    def get(self, order_id):
        order = self.find(order_id)
        if order is None:
            raise NotFoundError(f'Order with ID {order_id} not found.')
        return order

    def add(self, order):
        self.session.add(order)
        self.session.flush()
        return order

    def list(self, start=None, end=None, status=None):
        query = _in_range(self.session.query(KitchenOrder), KitchenOrder.created_at, start, end)
        if status:
            query = query.filter_by(status=status)
        return query.order_by(KitchenOrder.created_at.desc(), KitchenOrder.id.desc()).all()

    def transition(self, order_id, from_statuses, to_status, **values):
        """
        Move an order to ``to_status`` only if it currently is in one of
        ``from_statuses``. The status check is part of the UPDATE, which
        makes it the single-writer guard for the order.
        """
        values['status'] = to_status
        matched = self.session.query(KitchenOrder).filter(
            KitchenOrder.id == order_id,
            KitchenOrder.status.in_(from_statuses),
        ).update(values, synchronize_session='fetch')
        return matched == 1


class LedgerRepository:
    """Sales and expenses."""

    def __init__(self, session):
        self.session = session

    def add_sale(self, sale):
        self.session.add(sale)
        return sale

    def sales(self, start=None, end=None):
        query = _in_range(self.session.query(Sale), Sale.date, start, end)
        return query.order_by(Sale.date.desc(), Sale.id.desc()).all()

    def sales_for_order(self, order_id):
        return self.session.query(Sale).filter_by(order_id=order_id).order_by(Sale.id).all()

    def find_expense(self, expense_id):
        return self.session.get(Expense, expense_id)

    def get_expense(self, expense_id):
        expense = self.find_expense(expense_id)
        if expense is None:
            raise NotFoundError(f'Expense with ID {expense_id} not found.')
        return expense

    def add_expense(self, expense):
        self.session.add(expense)
        self.session.flush()
        return expense

    def delete_expense(self, expense):
        self.session.delete(expense)
        self.session.flush()

    def expenses(self, start=None, end=None):
        query = _in_range(self.session.query(Expense), Expense.date, start, end)
        return query.order_by(Expense.date.desc(), Expense.id.desc()).all()


class AuditRepository:
    def __init__(self, session):
        self.session = session

    def record(self, user, action, details=None):
        entry = AuditLog(user=user, action=action, details=details)
        self.session.add(entry)
        return entry

    def list(self, limit=None):
        query = self.session.query(AuditLog).order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        if limit:
            query = query.limit(limit)
        return query.all()
