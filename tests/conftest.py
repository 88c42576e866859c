import pytest

from app import create_app
from extensions import db
from models import Ingredient, MenuItem, Recipe


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'CACHE_TYPE': 'SimpleCache',
        'LOW_STOCK_WEBHOOK_URL': None,
        'LOW_STOCK_THRESHOLD': 0,
        'ALLOW_UNCOSTED_SALES': True,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def session(app):
    with app.app_context():
        yield db.session


@pytest.fixture
def burger_kitchen(session):
    """Beef 10kg @8.00, buns 100pcs @0.20, Burger 12.99 = 0.25kg beef + 2 buns."""
    beef = Ingredient(name='Ground Beef', unit='kg', current_stock=10.0, cost_per_unit=8.00)
    bun = Ingredient(name='Burger Bun', unit='pcs', current_stock=100, cost_per_unit=0.20)
    session.add_all([beef, bun])
    session.flush()

    burger = MenuItem(name='Burger', price=12.99, category='main')
    burger.recipe.append(Recipe(ingredient_id=beef.id, quantity_required=0.25, position=0))
    burger.recipe.append(Recipe(ingredient_id=bun.id, quantity_required=2, position=1))
    session.add(burger)
    session.commit()
    return {'beef': beef.id, 'bun': bun.id, 'burger': burger.id}


def set_stock(session, ingredient_id, quantity):
    session.get(Ingredient, ingredient_id).current_stock = quantity
    session.commit()


def stock_of(session, ingredient_id):
    return session.get(Ingredient, ingredient_id).current_stock
