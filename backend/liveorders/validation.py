# Overview: Payload parsing and business-rule validation for API and CLI input.
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .models.catalog import VALID_SALE_TYPES


# Maximum price: R$ 9.999.999,99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

MAX_MESSAGE_LENGTH = 4096
MAX_BATCH_SIZE = 500


class ValidationError(ValueError):
    """400-level input problem."""


@dataclass(frozen=True)
class InboundMessage:
    customer_phone: str
    message: str
    group_id: str | None = None
    group_name: str | None = None
    drain: bool = True


def _required_str(payload: dict, key: str, max_length: int | None = None) -> str:
    value = payload.get(key)
    if value is None:
        raise ValidationError(f"Missing required field: {key}")
    if not isinstance(value, (str, int)):
        raise ValidationError(f"{key} must be a string")
    value = str(value).strip()
    if not value:
        raise ValidationError(f"{key} cannot be blank")
    if max_length and len(value) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return value


def _optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _coerce_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        v = value.strip().lower()
        if v in ("true", "1", "yes", "y", "on"):
            return True
        if v in ("false", "0", "no", "n", "off"):
            return False
    raise ValidationError(f"Invalid boolean: {value!r}")


def parse_inbound_message(payload: Any) -> InboundMessage:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    return InboundMessage(
        customer_phone=_required_str(payload, "customer_phone"),
        message=_required_str(payload, "message", MAX_MESSAGE_LENGTH),
        group_id=_optional_str(payload, "group_id"),
        group_name=_optional_str(payload, "group_name"),
        drain=_coerce_bool(payload.get("drain"), True),
    )


def parse_queue_batch(payload: Any) -> list[dict]:
    """
    {"messages": [{"recipient", "message", "delay_after_ms"?}, ...]}

    delay_after_ms: omitted/null -> queue default, 0 -> no delay,
    negative -> clamped to 0 by the queue.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ValidationError("messages must be a non-empty list")
    if len(messages) > MAX_BATCH_SIZE:
        raise ValidationError(f"messages cannot exceed {MAX_BATCH_SIZE} items")

    batch = []
    for index, item in enumerate(messages):
        if not isinstance(item, dict):
            raise ValidationError(f"messages[{index}] must be an object")
        try:
            recipient = _required_str(item, "recipient")
            body = _required_str(item, "message", MAX_MESSAGE_LENGTH)
        except ValidationError as e:
            raise ValidationError(f"messages[{index}]: {e}") from None

        delay = item.get("delay_after_ms")
        if delay is not None:
            if isinstance(delay, bool) or not isinstance(delay, (int, float)):
                raise ValidationError(f"messages[{index}]: delay_after_ms must be a number")
            delay = int(delay)

        batch.append({"recipient": recipient, "body": body, "delay_after_ms": delay})

    return batch


def enforce_rules_product(*, code: str, price_cents: int, stock: int, sale_type: str) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if not code or not code.strip():
        raise ValidationError("code cannot be blank")
    if not code.strip().upper().startswith("C") or not code.strip()[1:].isdigit():
        raise ValidationError("code must be 'C' followed by digits (e.g. C101)")
    if not isinstance(price_cents, int):
        raise ValidationError("price_cents must be an integer")
    if price_cents < 0:
        raise ValidationError("price_cents must be >= 0")
    if price_cents > MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")
    if stock < 0:
        raise ValidationError("stock must be >= 0")
    if sale_type not in VALID_SALE_TYPES:
        raise ValidationError(f"sale_type must be one of: {', '.join(sorted(VALID_SALE_TYPES))}")
