"""
Error taxonomy for the order, inventory and reporting workflows.

Every error carries the HTTP status the API answers with, so route
handlers can simply let them propagate.
"""


class RestaurantError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'message': self.message}


class ValidationError(RestaurantError):
    """Bad input shape or range, rejected before any lookup."""
    status_code = 400


class NotFoundError(RestaurantError):
    """A referenced menu item, ingredient or order does not exist."""
    status_code = 404


class MissingRecipeError(NotFoundError):
    """A menu item has no recipe and uncosted sales are not allowed."""


class InvalidStateError(RestaurantError):
    """The order (or record) is in a state that forbids the operation."""
    status_code = 409


class InsufficientStockError(RestaurantError):
    """Stock cannot cover the order. Carries every shortage, not just the first."""
    status_code = 409

    def __init__(self, shortages, message='Cannot mark order ready due to insufficient inventory.'):
        super().__init__(message)
        self.shortages = list(shortages)

    def to_dict(self):
        return {'message': self.message, 'shortages': self.shortages}
