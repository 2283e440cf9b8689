# Overview: Publishes order change events on the tenant's Redis channel.

"""
Order event broadcaster.

Staff dashboards subscribe to `orders:<org_id>` and receive JSON messages:
    {"type": "NEW_ORDER", "order": {...}}
    {"type": "STATUS_UPDATE", "order": {...}}

Delivery is at-most-once. Events are published after the database commit;
a Redis outage is logged and never fails the request that changed the order.
"""

import json

import redis
from flask import current_app

from ..extensions import redis_store

EVENT_NEW_ORDER = "NEW_ORDER"
EVENT_STATUS_UPDATE = "STATUS_UPDATE"

CHANNEL_PREFIX = "orders:"


def tenant_channel(org_id: int) -> str:
    return f"{CHANNEL_PREFIX}{org_id}"


def publish_order_event(event_type: str, order) -> int:
    """
    Publish an order event. Returns the number of subscribers reached
    (0 when Redis is unavailable).
    """
    channel = tenant_channel(order.org_id)
    message = json.dumps({"type": event_type, "order": order.to_dict()})
    try:
        return redis_store.client.publish(channel, message)
    except redis.RedisError:
        current_app.logger.warning(
            "Failed to publish %s for order %s on %s", event_type, order.order_number, channel,
            exc_info=True,
        )
        return 0
