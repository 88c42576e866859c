import math
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from errors import InvalidStateError, ValidationError
from extensions import cache, db
from kitchen import KitchenWorkflow
from models import Expense, Ingredient, MenuItem, OrderStatus
from reports import generate_report, parse_date_range
from repositories import (
    AuditRepository,
    CatalogRepository,
    InventoryRepository,
    LedgerRepository,
    OrderRepository,
)

api = Blueprint('api', __name__, url_prefix='/api')


# Request helpers
def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def _text(data, key, required=True, default=None):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f'{key} is required')
        return default
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'{key} must be a non-empty string')
    return value.strip()


def _number(data, key, minimum=0, strict=False, required=True, default=None):
    value = data.get(key)
    if value is None:
        if required:
            raise ValidationError(f'{key} is required')
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be a number')
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number') from None
    if not math.isfinite(value):
        raise ValidationError(f'{key} must be a finite number')
    if strict and value <= minimum:
        raise ValidationError(f'{key} must be greater than {minimum}')
    if not strict and value < minimum:
        raise ValidationError(f'{key} cannot be less than {minimum}')
    return value


def _datetime(data, key):
    value = data.get(key)
    if not value:
        raise ValidationError(f'{key} is required')
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f'Invalid {key} format') from None


def _recipe_lines(raw):
    if not isinstance(raw, list):
        raise ValidationError('recipe_ingredients must be a list')
    lines = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError('Each recipe ingredient must be an object')
        ingredient_id = entry.get('ingredient_id')
        if not isinstance(ingredient_id, int) or isinstance(ingredient_id, bool):
            raise ValidationError('ingredient_id must be an integer')
        lines.append((ingredient_id, _number(entry, 'quantity_required', strict=True)))
    return lines


def _date_range_args():
    return parse_date_range(request.args.get('start_date'), request.args.get('end_date'))


def _actor():
    return request.headers.get(current_app.config['AUDIT_USER_HEADER']) or 'system'


def _audit(action, details):
    AuditRepository(db.session).record(_actor(), action, details)


def _workflow():
    return KitchenWorkflow.from_config(
        db.session,
        current_app.config,
        notifier=current_app.extensions.get('low_stock_notifier'),
        actor=_actor(),
    )


def _invalidate_menu_cache():
    # menu availability depends on stock levels too
    cache.clear()


# Serializers
def _isoformat(value):
    return value.isoformat() if value else None


def _recipe_dict(line):
    return {
        'id': line.id,
        'ingredient_id': line.ingredient_id,
        'quantity_required': line.quantity_required,
        'ingredient_name': line.ingredient.name if line.ingredient else None,
        'ingredient_unit': line.ingredient.unit if line.ingredient else None,
    }


def _can_make(item):
    for line in item.recipe:
        if line.ingredient is None or (line.ingredient.current_stock or 0) < line.quantity_required:
            return False
    return True


def _menu_item_dict(item):
    return {
        'id': item.id,
        'name': item.name,
        'description': item.description,
        'price': item.price,
        'category': item.category,
        'can_make': _can_make(item),
        'recipe': [_recipe_dict(line) for line in item.recipe],
        'created_at': _isoformat(item.created_at),
    }


def _ingredient_dict(ing):
    return {
        'id': ing.id,
        'name': ing.name,
        'unit': ing.unit,
        'current_stock': ing.current_stock,
        'min_stock': ing.min_stock,
        'cost_per_unit': ing.cost_per_unit,
        'last_restocked': _isoformat(ing.last_restocked),
        'status': 'low' if ing.current_stock <= ing.min_stock else 'adequate',
    }


def _order_dict(order):
    return {
        'id': order.id,
        'status': order.status,
        'total_amount': order.total_amount,
        'notes': order.notes,
        'created_at': _isoformat(order.created_at),
        'completed_at': _isoformat(order.completed_at),
        'items': [{
            'id': item.id,
            'menu_item_id': item.menu_item_id,
            'menu_item_name': item.menu_item_name,
            'price': item.price,
            'quantity': item.quantity,
        } for item in order.items],
    }


def _sale_dict(sale):
    return {
        'id': sale.id,
        'date': _isoformat(sale.date),
        'item_sold': sale.item_sold,
        'quantity': sale.quantity,
        'amount': sale.amount,
        'cost_of_goods': sale.cost_of_goods,
        'profit': sale.profit,
        'payment_method': sale.payment_method,
        'order_id': sale.order_id,
    }


def _expense_dict(expense):
    return {
        'id': expense.id,
        'date': _isoformat(expense.date),
        'category': expense.category,
        'description': expense.description,
        'amount': expense.amount,
    }


@api.route('', methods=['GET'])
def api_index():
    return jsonify({'message': 'Restaurant Back Office API'})


# Menu Management
@api.route('/menu', methods=['GET'])
@cache.cached(query_string=True)
def get_menu():
    items = CatalogRepository(db.session).list_menu_items(request.args.get('category'))
    return jsonify([_menu_item_dict(item) for item in items])


@api.route('/menu', methods=['POST'])
def add_menu_item():
    data = _json_body()
    catalog = CatalogRepository(db.session)

    item = catalog.add(MenuItem(
        name=_text(data, 'name'),
        description=data.get('description', ''),
        price=_number(data, 'price', strict=True),
        category=_text(data, 'category'),
    ))
    if 'recipe_ingredients' in data:
        catalog.replace_recipe(item, _recipe_lines(data['recipe_ingredients']))

    _audit('menu_item_created', f'Menu item "{item.name}" created at {item.price:.2f}')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Menu item added', 'id': item.id, 'item': _menu_item_dict(item)}), 201


@api.route('/menu/<int:item_id>', methods=['GET'])
def get_menu_item(item_id):
    item = CatalogRepository(db.session).get_menu_item(item_id)
    return jsonify(_menu_item_dict(item))


@api.route('/menu/<int:item_id>', methods=['PUT'])
def update_menu_item(item_id):
    data = _json_body()
    catalog = CatalogRepository(db.session)
    item = catalog.get_menu_item(item_id)

    item.name = _text(data, 'name', required=False, default=item.name)
    item.description = data.get('description', item.description)
    item.price = _number(data, 'price', strict=True, required=False, default=item.price)
    item.category = _text(data, 'category', required=False, default=item.category)
    if 'recipe_ingredients' in data:
        catalog.replace_recipe(item, _recipe_lines(data['recipe_ingredients']))

    _audit('menu_item_updated', f'Menu item {item.id} ("{item.name}") updated')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Menu item updated', 'item': _menu_item_dict(item)})


@api.route('/menu/<int:item_id>', methods=['DELETE'])
def delete_menu_item(item_id):
    catalog = CatalogRepository(db.session)
    item = catalog.get_menu_item(item_id)
    name = item.name
    catalog.delete(item)

    _audit('menu_item_deleted', f'Menu item {item_id} ("{name}") deleted')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Menu item deleted'})


# Recipe Management
@api.route('/menu/<int:item_id>/recipe', methods=['GET'])
def get_menu_item_recipe(item_id):
    item = CatalogRepository(db.session).get_menu_item(item_id)
    return jsonify([_recipe_dict(line) for line in item.recipe])


@api.route('/menu/<int:item_id>/recipe', methods=['POST'])
def update_menu_item_recipe(item_id):
    data = _json_body()
    catalog = CatalogRepository(db.session)
    item = catalog.get_menu_item(item_id)
    catalog.replace_recipe(item, _recipe_lines(data.get('ingredients', [])))

    _audit('recipe_updated', f'Recipe for "{item.name}" now has {len(item.recipe)} ingredient(s)')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Recipe updated successfully',
                    'recipe': [_recipe_dict(line) for line in item.recipe]})


# Inventory Management
@api.route('/inventory', methods=['GET'])
def get_inventory():
    ingredients = InventoryRepository(db.session).list_ingredients()
    return jsonify([_ingredient_dict(ing) for ing in ingredients])


@api.route('/inventory', methods=['POST'])
def add_ingredient():
    data = _json_body()
    ingredient = InventoryRepository(db.session).add(Ingredient(
        name=_text(data, 'name'),
        unit=_text(data, 'unit'),
        current_stock=_number(data, 'current_stock', required=False, default=0),
        min_stock=_number(data, 'min_stock', required=False, default=0),
        cost_per_unit=_number(data, 'cost_per_unit', required=False, default=0),
    ))

    _audit('ingredient_created', f'Ingredient "{ingredient.name}" created with {ingredient.current_stock} {ingredient.unit}')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Ingredient added', 'id': ingredient.id,
                    'ingredient': _ingredient_dict(ingredient)}), 201


@api.route('/inventory/<int:ingredient_id>', methods=['PUT'])
def update_ingredient(ingredient_id):
    data = _json_body()
    ingredient = InventoryRepository(db.session).get_ingredient(ingredient_id)

    ingredient.name = _text(data, 'name', required=False, default=ingredient.name)
    ingredient.unit = _text(data, 'unit', required=False, default=ingredient.unit)
    ingredient.current_stock = _number(data, 'current_stock', required=False, default=ingredient.current_stock)
    ingredient.min_stock = _number(data, 'min_stock', required=False, default=ingredient.min_stock)
    ingredient.cost_per_unit = _number(data, 'cost_per_unit', required=False, default=ingredient.cost_per_unit)

    _audit('ingredient_updated', f'Ingredient {ingredient.id} ("{ingredient.name}") updated')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Ingredient updated', 'ingredient': _ingredient_dict(ingredient)})


@api.route('/inventory/<int:ingredient_id>', methods=['DELETE'])
def delete_ingredient(ingredient_id):
    inventory = InventoryRepository(db.session)
    ingredient = inventory.get_ingredient(ingredient_id)

    used_by = CatalogRepository(db.session).recipes_using(ingredient_id)
    if used_by:
        names = sorted({line.menu_item.name for line in used_by})
        raise InvalidStateError(f'Ingredient "{ingredient.name}" is used by: {", ".join(names)}')
    if inventory.has_order_usage(ingredient_id):
        raise InvalidStateError(f'Ingredient "{ingredient.name}" has usage history from kitchen orders')

    name = ingredient.name
    inventory.delete(ingredient)
    _audit('ingredient_deleted', f'Ingredient {ingredient_id} ("{name}") deleted')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Ingredient deleted'})


@api.route('/inventory/low-stock', methods=['GET'])
def get_low_stock():
    low_stock = InventoryRepository(db.session).low_stock()
    return jsonify([{
        'id': ing.id,
        'name': ing.name,
        'current_stock': ing.current_stock,
        'min_stock': ing.min_stock,
        'unit': ing.unit
    } for ing in low_stock])


@api.route('/inventory/restock', methods=['POST'])
def restock_inventory():
    data = _json_body()
    inventory = InventoryRepository(db.session)
    ingredient_id = data.get('ingredient_id')
    if not isinstance(ingredient_id, int) or isinstance(ingredient_id, bool):
        raise ValidationError('ingredient_id must be an integer')
    quantity = _number(data, 'quantity', strict=True)

    ingredient = inventory.restock(inventory.get_ingredient(ingredient_id), quantity, notes=data.get('notes'))
    _audit('ingredient_restocked', f'Ingredient "{ingredient.name}" restocked by {quantity} {ingredient.unit}')
    db.session.commit()
    _invalidate_menu_cache()
    return jsonify({'message': 'Stock updated', 'new_stock': ingredient.current_stock})


@api.route('/inventory/transactions', methods=['GET'])
def get_inventory_transactions():
    transactions = InventoryRepository(db.session).list_transactions(
        ingredient_id=request.args.get('ingredient_id', type=int),
        transaction_type=request.args.get('type'),
    )
    return jsonify([{
        'id': t.id,
        'ingredient_id': t.ingredient_id,
        'transaction_type': t.transaction_type,
        'quantity': t.quantity,
        'transaction_date': _isoformat(t.transaction_date),
        'notes': t.notes,
        'related_order_id': t.related_order_id
    } for t in transactions])


# Expenses
@api.route('/expenses', methods=['GET'])
def get_expenses():
    start, end = _date_range_args()
    expenses = LedgerRepository(db.session).expenses(start, end)
    return jsonify([_expense_dict(e) for e in expenses])


@api.route('/expenses', methods=['POST'])
def add_expense():
    data = _json_body()
    expense = LedgerRepository(db.session).add_expense(Expense(
        date=_datetime(data, 'date'),
        category=_text(data, 'category'),
        description=_text(data, 'description'),
        amount=_number(data, 'amount', strict=True),
    ))

    _audit('expense_created', f'Expense {expense.id}: {expense.category} {expense.amount:.2f}')
    db.session.commit()
    return jsonify({'message': 'Expense added', 'id': expense.id, 'expense': _expense_dict(expense)}), 201


@api.route('/expenses/<int:expense_id>', methods=['PUT'])
def update_expense(expense_id):
    data = _json_body()
    expense = LedgerRepository(db.session).get_expense(expense_id)

    if 'date' in data:
        expense.date = _datetime(data, 'date')
    expense.category = _text(data, 'category', required=False, default=expense.category)
    expense.description = _text(data, 'description', required=False, default=expense.description)
    expense.amount = _number(data, 'amount', strict=True, required=False, default=expense.amount)

    _audit('expense_updated', f'Expense {expense.id} updated')
    db.session.commit()
    return jsonify({'message': 'Expense updated', 'expense': _expense_dict(expense)})


@api.route('/expenses/<int:expense_id>', methods=['DELETE'])
def delete_expense(expense_id):
    ledger = LedgerRepository(db.session)
    ledger.delete_expense(ledger.get_expense(expense_id))

    _audit('expense_deleted', f'Expense {expense_id} deleted')
    db.session.commit()
    return jsonify({'message': 'Expense deleted'})


# Kitchen Orders
@api.route('/kitchen-orders', methods=['POST'])
def create_kitchen_order():
    data = _json_body()
    order = _workflow().place_order(data.get('items'), notes=data.get('notes'))
    return jsonify({'message': 'Order created', 'order_id': order.id, 'order': _order_dict(order)}), 201


@api.route('/kitchen-orders', methods=['GET'])
def get_kitchen_orders():
    start, end = _date_range_args()
    status = request.args.get('status')
    if status and status not in OrderStatus.ALL:
        raise ValidationError(f'Unknown order status "{status}"')
    orders = OrderRepository(db.session).list(start, end, status)
    return jsonify([_order_dict(order) for order in orders])


@api.route('/kitchen-orders/<int:order_id>', methods=['GET'])
def get_kitchen_order(order_id):
    order = OrderRepository(db.session).get(order_id)
    result = _order_dict(order)
    result['sales'] = [_sale_dict(s) for s in LedgerRepository(db.session).sales_for_order(order_id)]
    return jsonify(result)


@api.route('/kitchen-orders/<int:order_id>/preparing', methods=['PUT'])
def start_preparing_order(order_id):
    order = _workflow().start_preparing(order_id)
    return jsonify({'message': f'Order {order_id} is being prepared.', 'order': _order_dict(order)})


@api.route('/kitchen-orders/<int:order_id>/ready', methods=['PUT'])
def mark_order_ready(order_id):
    data = request.get_json(silent=True) or {}
    payment_method = data.get('payment_method') if isinstance(data, dict) else None
    order, sales = _workflow().mark_ready(order_id, payment_method=payment_method)
    _invalidate_menu_cache()
    return jsonify({
        'message': f'Order {order_id} marked as Ready! Inventory updated and sales recorded.',
        'order': _order_dict(order),
        'sales': [_sale_dict(s) for s in sales],
    })


@api.route('/kitchen-orders/<int:order_id>/cancel', methods=['PUT'])
def cancel_kitchen_order(order_id):
    order = _workflow().cancel_order(order_id)
    return jsonify({'message': f'Order {order_id} has been cancelled.', 'order': _order_dict(order)})


# Sales (recorded by kitchen orders, read-only here)
@api.route('/sales', methods=['GET'])
def get_sales():
    start, end = _date_range_args()
    sales = LedgerRepository(db.session).sales(start, end)
    return jsonify([_sale_dict(s) for s in sales])


# Reporting
@api.route('/reports/financial', methods=['GET'])
def financial_report():
    report = generate_report(db.session, request.args.get('start_date'), request.args.get('end_date'))
    report['sales'] = [_sale_dict(s) for s in report['sales']]
    report['expenses'] = [_expense_dict(e) for e in report['expenses']]
    return jsonify(report)


# Audit Logs
@api.route('/auditlogs', methods=['GET'])
def get_audit_logs():
    logs = AuditRepository(db.session).list(limit=request.args.get('limit', type=int))
    return jsonify([{
        'id': log.id,
        'timestamp': _isoformat(log.timestamp),
        'user': log.user,
        'action': log.action,
        'details': log.details
    } for log in logs])
