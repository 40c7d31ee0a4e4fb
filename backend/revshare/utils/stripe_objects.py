"""Accessors that work on both Stripe SDK objects and plain webhook dicts"""
from typing import Any, List, Optional


def get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key, default)
        return default if value is None else value
    # Stripe objects
    value = getattr(obj, key, None)
    if value is not None:
        return value
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def get_nested(obj: Any, *keys: str, default=None):
    """Walk a chain of keys, returning default as soon as a link is missing."""
    current = obj
    for key in keys:
        current = get_stripe_value(current, key)
        if current is None:
            return default
    return current


def object_id(value: Any) -> Optional[str]:
    """Return the id of an expandable field, which may be a bare id string or an object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return get_stripe_value(value, "id")


def list_data(value: Any) -> List[Any]:
    """Items of a Stripe list object or a plain list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    data = get_stripe_value(value, "data")
    return list(data) if data else []
