"""Order handling service with injected dependencies."""

import logging
import uuid

from .base import BaseService
from .models import Order
from .notifications import send_email

logger = logging.getLogger(__name__)

TAX_RATE = 0.2


def _rounded(value):
    return round(value, 2)


class OrderService(BaseService):
    def __init__(self, api: OrderApi, notifier, retries: int = 3):
        super().__init__()
        self.api = api
        self.notifier = notifier
        self.retries = retries
        self.orders = []
        self.api.register(self)

    @property
    def total(self):
        return _rounded(sum(order.amount for order in self.orders) * (1 + TAX_RATE))

    @property
    def status(self):
        return self._status

    @status.setter
    def status(self, value: str):
        self._status = value
        self.notifier.publish(value)

    def place_order(self, customer_id: int, items: list):
        order = Order(customer_id, items)
        order.id = str(uuid.uuid4())
        self.api.save(order)
        self.orders.append(order)
        logger.info("placed %s", order.id)
        self.last_order_id = order.id
        return order

    def cancel(self, order_id):
        if self.session.is_open:
            self.api.client.delete(order_id)
        self.status = "cancelled"
        send_email(self.notifier.address, "cancelled")

    async def sync(self):
        for order in await self.api.fetch_all():
            self.orders.append(order)
        self.synced = True
