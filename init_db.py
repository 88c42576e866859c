from app import create_app, initialize_database
from extensions import db
from models import Ingredient, MenuItem, Recipe

SAMPLE_INGREDIENTS = [
    # name, unit, current_stock, min_stock, cost_per_unit
    ("Ground Beef", "kg", 10.0, 2.0, 8.00),
    ("Burger Bun", "pcs", 100, 20, 0.20),
    ("Cheddar", "kg", 3.0, 0.5, 12.00),
    ("Potatoes", "kg", 25.0, 5.0, 1.10),
    ("Frying Oil", "l", 10.0, 2.0, 2.50),
]

SAMPLE_MENU = [
    # name, price, category, [(ingredient name, quantity per unit), ...]
    ("Burger", 12.99, "main", [("Ground Beef", 0.25), ("Burger Bun", 2)]),
    ("Cheeseburger", 14.49, "main", [("Ground Beef", 0.25), ("Burger Bun", 2), ("Cheddar", 0.05)]),
    ("Fries", 4.50, "side", [("Potatoes", 0.3), ("Frying Oil", 0.05)]),
    ("Lemonade", 3.00, "drink", []),
]


def seed_sample_data():
    """Add the sample catalog unless ingredients already exist. Returns True when seeded."""
    if Ingredient.query.first() is not None:
        print("Ingredients already present, skipping sample data.")
        return False

    ingredients = {}
    for name, unit, stock, min_stock, cost in SAMPLE_INGREDIENTS:
        ingredient = Ingredient(name=name, unit=unit, current_stock=stock,
                                min_stock=min_stock, cost_per_unit=cost)
        db.session.add(ingredient)
        ingredients[name] = ingredient
    db.session.flush()

    for name, price, category, recipe in SAMPLE_MENU:
        item = MenuItem(name=name, price=price, category=category)
        for position, (ingredient_name, quantity) in enumerate(recipe):
            item.recipe.append(Recipe(
                ingredient_id=ingredients[ingredient_name].id,
                quantity_required=quantity,
                position=position,
            ))
        db.session.add(item)

    db.session.commit()
    print(f"Added {len(SAMPLE_INGREDIENTS)} ingredients and {len(SAMPLE_MENU)} menu items!")
    return True


def init_database():
    app = create_app()
    initialize_database(app)
    with app.app_context():
        seed_sample_data()


if __name__ == '__main__':
    init_database()
