import json
import logging
from typing import Any, Dict

from .config import settings
from .db import utcnow
from .kafka_client import get_producer

_logger = logging.getLogger(__name__)

ORDER_CREATED = "order.created"
PAYMENT_INITIATED = "payment.initiated"
PAYMENT_SETTLED = "payment.settled"
PAYMENT_EXPIRED = "payment.expired"
STOCK_RESTOCKED = "stock.restocked"


async def publish_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Publish a lifecycle event to the order events topic.

    Events are notifications only: a broker outage is logged and never fails
    the request that produced the event.
    """
    if not settings.KAFKA_ENABLED:
        return False
    message = {"type": event_type, "occurred_at": utcnow().isoformat(), "data": payload}
    try:
        producer = await get_producer()
        await producer.send_and_wait(settings.ORDER_EVENTS_TOPIC, json.dumps(message).encode("utf-8"))
    except Exception as e:
        _logger.warning("Event publish failed | type=%s err=%s", event_type, e)
        return False
    _logger.debug("Event published | type=%s topic=%s", event_type, settings.ORDER_EVENTS_TOPIC)
    return True
