"""
Low-stock notifications.

Delivery is fire-and-forget: a failing subscriber or an unreachable
webhook is logged and never reaches the caller. Webhook posts run on a
daemon thread so a slow endpoint does not hold up the request that
triggered the event.
"""
import logging
import threading
from datetime import datetime

import requests

logger = logging.getLogger(__name__)


class LowStockNotifier:
    def __init__(self, webhook_url=None, timeout=3.0, background=True):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.background = background
        self._subscribers = []

    def subscribe(self, callback):
        """Register ``callback(event)`` to receive every low-stock event."""
        self._subscribers.append(callback)
        return callback

    def unsubscribe(self, callback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def notify(self, ingredient, threshold):
        event = {
            'type': 'low_stock',
            'ingredient_id': ingredient.id,
            'ingredient_name': ingredient.name,
            'current_stock': ingredient.current_stock,
            'threshold': threshold,
            'unit': ingredient.unit,
            'timestamp': datetime.utcnow().isoformat(),
        }
        logger.info(
            "Low stock: %s at %s %s (threshold %s)",
            ingredient.name, ingredient.current_stock, ingredient.unit, threshold,
        )

        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Low-stock subscriber %r failed", callback)

        if self.webhook_url:
            if self.background:
                threading.Thread(target=self._post, args=(event,), daemon=True).start()
            else:
                self._post(event)
        return event

    def _post(self, event):
        try:
            response = requests.post(self.webhook_url, json=event, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Low-stock webhook unreachable: %s", exc)
