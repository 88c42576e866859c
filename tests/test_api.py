import pytest


def create_ingredient(client, name, unit, stock, min_stock=0, cost=0):
    response = client.post('/api/inventory', json={
        'name': name,
        'unit': unit,
        'current_stock': stock,
        'min_stock': min_stock,
        'cost_per_unit': cost,
    })
    assert response.status_code == 201
    return response.get_json()['id']


@pytest.fixture
def kitchen(client):
    beef = create_ingredient(client, 'Ground Beef', 'kg', 10.0, min_stock=2, cost=8.00)
    bun = create_ingredient(client, 'Burger Bun', 'pcs', 100, min_stock=20, cost=0.20)
    response = client.post('/api/menu', json={
        'name': 'Burger',
        'price': 12.99,
        'category': 'main',
        'recipe_ingredients': [
            {'ingredient_id': beef, 'quantity_required': 0.25},
            {'ingredient_id': bun, 'quantity_required': 2},
        ],
    })
    assert response.status_code == 201
    return {'beef': beef, 'bun': bun, 'burger': response.get_json()['id']}


def place_order(client, menu_item_id, quantity, **headers):
    response = client.post('/api/kitchen-orders', json={
        'items': [{'menu_item_id': menu_item_id, 'quantity': quantity}],
    }, headers=headers)
    assert response.status_code == 201
    return response.get_json()['order_id']


def stock(client, ingredient_id):
    return {i['id']: i['current_stock'] for i in client.get('/api/inventory').get_json()}[ingredient_id]


def test_index(client):
    assert client.get('/').status_code == 200
    assert client.get('/api').get_json()['message'] == 'Restaurant Back Office API'


# Menu

def test_menu_item_with_recipe(client, kitchen):
    item = client.get(f"/api/menu/{kitchen['burger']}").get_json()

    assert item['name'] == 'Burger'
    assert item['can_make'] is True
    assert [(r['ingredient_name'], r['quantity_required']) for r in item['recipe']] == [
        ('Ground Beef', 0.25),
        ('Burger Bun', 2),
    ]


def test_menu_listing_filters_by_category(client, kitchen):
    client.post('/api/menu', json={'name': 'Lemonade', 'price': 3, 'category': 'drink'})

    assert [i['name'] for i in client.get('/api/menu').get_json()] == ['Burger', 'Lemonade']
    assert [i['name'] for i in client.get('/api/menu?category=drink').get_json()] == ['Lemonade']


@pytest.mark.parametrize('payload', [
    {'price': 5, 'category': 'main'},
    {'name': 'Soup', 'price': 0, 'category': 'main'},
    {'name': 'Soup', 'price': 'cheap', 'category': 'main'},
    {'name': 'Soup', 'price': 'inf', 'category': 'main'},
    {'name': 'Soup', 'price': 'nan', 'category': 'main'},
    {'name': 'Soup', 'price': 5},
    {'name': 'Soup', 'price': 5, 'category': 'main', 'recipe_ingredients': 'beef'},
])
def test_invalid_menu_item_is_rejected(client, payload):
    response = client.post('/api/menu', json=payload)

    assert response.status_code == 400
    assert 'message' in response.get_json()


def test_duplicate_menu_item_conflicts(client, kitchen):
    response = client.post('/api/menu', json={'name': 'Burger', 'price': 9, 'category': 'main'})
    assert response.status_code == 409


def test_recipe_with_unknown_ingredient_is_not_found(client, kitchen):
    response = client.post(f"/api/menu/{kitchen['burger']}/recipe", json={
        'ingredients': [{'ingredient_id': 999, 'quantity_required': 1}],
    })

    assert response.status_code == 404
    assert len(client.get(f"/api/menu/{kitchen['burger']}/recipe").get_json()) == 2


def test_replace_recipe(client, kitchen):
    response = client.post(f"/api/menu/{kitchen['burger']}/recipe", json={
        'ingredients': [{'ingredient_id': kitchen['beef'], 'quantity_required': 0.3}],
    })

    assert response.status_code == 200
    recipe = client.get(f"/api/menu/{kitchen['burger']}/recipe").get_json()
    assert [(r['ingredient_id'], r['quantity_required']) for r in recipe] == [(kitchen['beef'], 0.3)]


def test_update_and_delete_menu_item(client, kitchen):
    response = client.put(f"/api/menu/{kitchen['burger']}", json={'price': 13.49})
    assert response.get_json()['item']['price'] == 13.49
    assert response.get_json()['item']['name'] == 'Burger'

    assert client.delete(f"/api/menu/{kitchen['burger']}").status_code == 200
    assert client.get(f"/api/menu/{kitchen['burger']}").status_code == 404


def test_menu_cache_is_refreshed_after_stock_changes(client, kitchen):
    assert client.get('/api/menu').get_json()[0]['can_make'] is True

    client.put(f"/api/inventory/{kitchen['bun']}", json={'current_stock': 1})

    assert client.get('/api/menu').get_json()[0]['can_make'] is False


# Inventory

def test_restock_records_purchase(client, kitchen):
    response = client.post('/api/inventory/restock', json={
        'ingredient_id': kitchen['beef'], 'quantity': 5, 'notes': 'Monday delivery',
    })

    assert response.status_code == 200
    assert response.get_json()['new_stock'] == 15.0
    (purchase,) = client.get(f"/api/inventory/transactions?ingredient_id={kitchen['beef']}&type=purchase").get_json()
    assert purchase['quantity'] == 5
    assert purchase['notes'] == 'Monday delivery'


@pytest.mark.parametrize('payload, status', [
    ({'ingredient_id': 1, 'quantity': 0}, 400),
    ({'ingredient_id': 1, 'quantity': -3}, 400),
    ({'ingredient_id': 1, 'quantity': 'nan'}, 400),
    ({'ingredient_id': 1, 'quantity': 'inf'}, 400),
    ({'ingredient_id': 'beef', 'quantity': 3}, 400),
    ({'ingredient_id': 999, 'quantity': 3}, 404),
])
def test_invalid_restock(client, kitchen, payload, status):
    assert client.post('/api/inventory/restock', json=payload).status_code == status


def test_low_stock_listing(client, kitchen):
    client.put(f"/api/inventory/{kitchen['bun']}", json={'current_stock': 20})

    low = client.get('/api/inventory/low-stock').get_json()
    assert [i['name'] for i in low] == ['Burger Bun']
    statuses = {i['name']: i['status'] for i in client.get('/api/inventory').get_json()}
    assert statuses == {'Burger Bun': 'low', 'Ground Beef': 'adequate'}


def test_ingredient_in_a_recipe_cannot_be_deleted(client, kitchen):
    response = client.delete(f"/api/inventory/{kitchen['beef']}")

    assert response.status_code == 409
    assert 'Burger' in response.get_json()['message']


def test_unused_ingredient_can_be_deleted(client):
    salt = create_ingredient(client, 'Salt', 'kg', 1)

    assert client.delete(f'/api/inventory/{salt}').status_code == 200
    assert client.get('/api/inventory').get_json() == []


def test_ingredient_with_order_history_cannot_be_deleted(client, kitchen):
    order_id = place_order(client, kitchen['burger'], 1)
    client.put(f'/api/kitchen-orders/{order_id}/ready')
    client.post(f"/api/menu/{kitchen['burger']}/recipe", json={
        'ingredients': [{'ingredient_id': kitchen['bun'], 'quantity_required': 2}],
    })

    response = client.delete(f"/api/inventory/{kitchen['beef']}")

    assert response.status_code == 409
    assert 'history' in response.get_json()['message']
    usage = client.get(f"/api/inventory/transactions?ingredient_id={kitchen['beef']}").get_json()
    assert [t['related_order_id'] for t in usage] == [order_id]


def test_negative_stock_is_rejected(client):
    response = client.post('/api/inventory', json={'name': 'Salt', 'unit': 'kg', 'current_stock': -1})
    assert response.status_code == 400


# Kitchen orders

def test_order_lifecycle(client, kitchen):
    order_id = place_order(client, kitchen['burger'], 2)

    response = client.put(f'/api/kitchen-orders/{order_id}/preparing')
    assert response.get_json()['order']['status'] == 'Preparing'

    response = client.put(f'/api/kitchen-orders/{order_id}/ready', json={'payment_method': 'Cash'})
    assert response.status_code == 200
    body = response.get_json()
    assert body['order']['status'] == 'Ready'
    (sale,) = body['sales']
    assert sale['amount'] == pytest.approx(25.98)
    assert sale['cost_of_goods'] == pytest.approx(4.80)
    assert sale['profit'] == pytest.approx(21.18)
    assert sale['payment_method'] == 'Cash'

    assert stock(client, kitchen['beef']) == pytest.approx(9.5)
    assert stock(client, kitchen['bun']) == pytest.approx(96)

    order = client.get(f'/api/kitchen-orders/{order_id}').get_json()
    assert order['completed_at'] is not None
    assert [s['id'] for s in order['sales']] == [sale['id']]

    usage = client.get('/api/inventory/transactions?type=usage').get_json()
    assert {t['related_order_id'] for t in usage} == {order_id}

    assert client.put(f'/api/kitchen-orders/{order_id}/ready').status_code == 409
    assert len(client.get('/api/sales').get_json()) == 1


def test_shortages_are_reported_with_conflict(client, kitchen):
    client.put(f"/api/inventory/{kitchen['beef']}", json={'current_stock': 0.4})
    order_id = place_order(client, kitchen['burger'], 2)

    response = client.put(f'/api/kitchen-orders/{order_id}/ready')

    assert response.status_code == 409
    body = response.get_json()
    assert body['message'] == 'Cannot mark order ready due to insufficient inventory.'
    (shortage,) = body['shortages']
    assert shortage['ingredient'] == 'Ground Beef'
    assert shortage['required'] == pytest.approx(0.5)
    assert shortage['available'] == pytest.approx(0.4)
    assert stock(client, kitchen['beef']) == pytest.approx(0.4)
    assert client.get(f'/api/kitchen-orders/{order_id}').get_json()['status'] == 'New'


def test_cancelled_order_is_terminal(client, kitchen):
    order_id = place_order(client, kitchen['burger'], 1)

    response = client.put(f'/api/kitchen-orders/{order_id}/cancel')
    assert response.get_json()['order']['status'] == 'Cancelled'

    assert client.put(f'/api/kitchen-orders/{order_id}/ready').status_code == 409
    assert client.put(f'/api/kitchen-orders/{order_id}/cancel').status_code == 409
    assert stock(client, kitchen['bun']) == 100
    assert client.get('/api/sales').get_json() == []


@pytest.mark.parametrize('body', [
    {},
    {'items': []},
    {'items': [{'menu_item_id': 1, 'quantity': 0}]},
])
def test_invalid_orders_are_rejected(client, body):
    assert client.post('/api/kitchen-orders', json=body).status_code == 400


def test_unknown_orders_and_items(client, kitchen):
    assert client.post('/api/kitchen-orders', json={
        'items': [{'menu_item_id': 999, 'quantity': 1}],
    }).status_code == 404
    assert client.get('/api/kitchen-orders/999').status_code == 404
    assert client.put('/api/kitchen-orders/999/ready').status_code == 404
    assert client.put('/api/kitchen-orders/999/cancel').status_code == 404


def test_order_listing_filters_by_status(client, kitchen):
    first = place_order(client, kitchen['burger'], 1)
    second = place_order(client, kitchen['burger'], 1)
    client.put(f'/api/kitchen-orders/{second}/cancel')

    assert [o['id'] for o in client.get('/api/kitchen-orders?status=New').get_json()] == [first]
    assert len(client.get('/api/kitchen-orders').get_json()) == 2
    assert client.get('/api/kitchen-orders?status=Eaten').status_code == 400


# Expenses and reports

def test_expense_crud_and_range(client):
    response = client.post('/api/expenses', json={
        'date': '2024-03-01T18:30:00', 'category': 'utilities', 'description': 'Gas bill', 'amount': 120.5,
    })
    assert response.status_code == 201
    expense_id = response.get_json()['id']
    client.post('/api/expenses', json={
        'date': '2024-03-03', 'category': 'supplies', 'description': 'Napkins', 'amount': 8,
    })

    listed = client.get('/api/expenses?start_date=2024-03-01&end_date=2024-03-01').get_json()
    assert [e['id'] for e in listed] == [expense_id]

    response = client.put(f'/api/expenses/{expense_id}', json={'amount': 99})
    assert response.get_json()['expense']['amount'] == 99

    assert client.delete(f'/api/expenses/{expense_id}').status_code == 200
    assert client.delete(f'/api/expenses/{expense_id}').status_code == 404


@pytest.mark.parametrize('payload', [
    {'category': 'rent', 'description': 'March', 'amount': 100},
    {'date': 'soon', 'category': 'rent', 'description': 'March', 'amount': 100},
    {'date': '2024-03-01', 'category': 'rent', 'description': 'March', 'amount': 0},
    {'date': '2024-03-01', 'category': 'rent', 'description': 'March', 'amount': 'nan'},
    {'date': '2024-03-01', 'category': 'rent', 'description': 'March', 'amount': 'inf'},
])
def test_invalid_expense_is_rejected(client, payload):
    assert client.post('/api/expenses', json=payload).status_code == 400


def test_financial_report(client, kitchen):
    order_id = place_order(client, kitchen['burger'], 2)
    client.put(f'/api/kitchen-orders/{order_id}/ready')
    client.post('/api/expenses', json={
        'date': '2024-03-01', 'category': 'rent', 'description': 'March', 'amount': 10,
    })

    report = client.get('/api/reports/financial').get_json()

    assert report['total_sales'] == pytest.approx(25.98)
    assert report['total_cost_of_goods'] == pytest.approx(4.80)
    assert report['total_expenses'] == pytest.approx(10)
    assert report['net_balance'] == pytest.approx(11.18)
    assert len(report['sales']) == 1
    assert report['expenses'][0]['description'] == 'March'


@pytest.mark.parametrize('query', [
    'start_date=2024-03-05&end_date=2024-03-01',
    'start_date=03/01/2024',
])
def test_financial_report_rejects_bad_ranges(client, query):
    assert client.get(f'/api/reports/financial?{query}').status_code == 400


# Audit log

def test_audit_log_records_acting_user(client, kitchen):
    order_id = place_order(client, kitchen['burger'], 1, **{'X-User': 'alice'})
    client.put(f'/api/kitchen-orders/{order_id}/ready', headers={'X-User': 'bob'})

    logs = client.get('/api/auditlogs?limit=2').get_json()

    assert [(log['user'], log['action']) for log in logs] == [('bob', 'order_ready'), ('alice', 'order_placed')]
    actions = {log['action'] for log in client.get('/api/auditlogs').get_json()}
    assert {'ingredient_created', 'menu_item_created'} <= actions
