# care_core/common/events.py
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Any

from django.db import transaction

logger = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]

_registry: Dict[str, List[Handler]] = defaultdict(list)


def subscribe(event_name: str):
    """
    Decorator to register an event handler.
    Usage:
        @subscribe("billing.period_settled")
        def handler(payload): ...
    """
    def _decorator(fn: Handler) -> Handler:
        _registry[event_name].append(fn)
        return fn
    return _decorator


def unsubscribe(event_name: str, fn: Handler) -> None:
    handlers = _registry.get(event_name, [])
    if fn in handlers:
        handlers.remove(fn)


def publish(event_name: str, payload: Dict[str, Any]) -> None:
    """
    Publish an event to in-process subscribers.
    Keep payloads ID-based (strings) to avoid cross-app imports.
    """
    for handler in _registry.get(event_name, []):
        handler(payload)


def publish_on_commit(event_name: str, payload: Dict[str, Any]) -> None:
    """
    Fire-and-forget publish once the surrounding transaction commits.

    Subscriber errors are logged, not re-raised: the state change has
    already committed by the time they run.
    """
    def _send() -> None:
        try:
            publish(event_name, payload)
        except Exception:
            logger.exception("Subscriber failed for %s", event_name)

    transaction.on_commit(_send)
