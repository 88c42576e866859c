from datetime import datetime

from extensions import db


class OrderStatus:
    NEW = 'New'
    PREPARING = 'Preparing'
    READY = 'Ready'
    CANCELLED = 'Cancelled'

    ALL = (NEW, PREPARING, READY, CANCELLED)
    OPEN = (NEW, PREPARING)
    TERMINAL = (READY, CANCELLED)


class TransactionType:
    USAGE = 'usage'
    PURCHASE = 'purchase'
    ADJUSTMENT = 'adjustment'


# Database Models
class MenuItem(db.Model):
    __tablename__ = 'menu_items'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.Text)
    price = db.Column(db.Float, nullable=False)
    category = db.Column(db.String(50), nullable=False)  # appetizer, main, dessert, drink, etc.
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    recipe = db.relationship(
        'Recipe',
        back_populates='menu_item',
        order_by='Recipe.position',
        cascade='all, delete-orphan',
    )


class Ingredient(db.Model):
    __tablename__ = 'ingredients'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    unit = db.Column(db.String(20), nullable=False)  # kg, g, l, ml, pcs, etc.
    current_stock = db.Column(db.Float, nullable=False, default=0)
    min_stock = db.Column(db.Float, nullable=False, default=0)
    cost_per_unit = db.Column(db.Float, nullable=False, default=0)
    last_restocked = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class Recipe(db.Model):
    """One ingredient line of a menu item's recipe, per unit of the item."""
    __tablename__ = 'recipes'
    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey('menu_items.id'), nullable=False)
    ingredient_id = db.Column(db.Integer, db.ForeignKey('ingredients.id'), nullable=False)
    quantity_required = db.Column(db.Float, nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    menu_item = db.relationship('MenuItem', back_populates='recipe')
    ingredient = db.relationship('Ingredient')


class KitchenOrder(db.Model):
    __tablename__ = 'kitchen_orders'
    id = db.Column(db.Integer, primary_key=True)
    status = db.Column(db.String(20), nullable=False, default=OrderStatus.NEW, index=True)
    total_amount = db.Column(db.Float, nullable=False, default=0)
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    completed_at = db.Column(db.DateTime)

    items = db.relationship(
        'KitchenOrderItem',
        back_populates='order',
        order_by='KitchenOrderItem.id',
        cascade='all, delete-orphan',
    )


class KitchenOrderItem(db.Model):
    __tablename__ = 'kitchen_order_items'
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey('kitchen_orders.id'), nullable=False)
    menu_item_id = db.Column(db.Integer, db.ForeignKey('menu_items.id'), nullable=False)
    # name and unit price as they were when the order was placed
    menu_item_name = db.Column(db.String(100), nullable=False)
    price = db.Column(db.Float, nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    order = db.relationship('KitchenOrder', back_populates='items')


class Sale(db.Model):
    __tablename__ = 'sales'
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    item_sold = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    cost_of_goods = db.Column(db.Float, nullable=False, default=0)
    profit = db.Column(db.Float, nullable=False)
    payment_method = db.Column(db.String(50), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey('kitchen_orders.id'))


class Expense(db.Model):
    __tablename__ = 'expenses'
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.DateTime, nullable=False, index=True)
    category = db.Column(db.String(50), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)


class InventoryTransaction(db.Model):
    __tablename__ = 'inventory_transactions'
    id = db.Column(db.Integer, primary_key=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey('ingredients.id'), nullable=False)
    transaction_type = db.Column(db.String(20), nullable=False)  # usage, purchase, adjustment
    quantity = db.Column(db.Float, nullable=False)
    transaction_date = db.Column(db.DateTime, default=datetime.utcnow)
    notes = db.Column(db.Text)
    related_order_id = db.Column(db.Integer, db.ForeignKey('kitchen_orders.id'))


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'
    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    user = db.Column(db.String(80), nullable=False)
    action = db.Column(db.String(50), nullable=False)
    details = db.Column(db.Text)
