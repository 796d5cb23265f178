"""Webhook definitions and the event envelope they receive."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from collectra.core.types import Operation


@dataclass(frozen=True)
class Webhook:
    """An external HTTP target notified after matching operations.

    Attributes:
        name: Human-readable name, used in logs
        api: Target URL the envelope is POSTed to
        on_operation: Operations this webhook fires on
        headers: Extra request headers (e.g. a shared secret)
    """

    name: str
    api: str
    on_operation: tuple[Operation, ...] = ()
    headers: dict[str, str] = field(default_factory=dict)

    def fires_on(self, operation: Operation) -> bool:
        return operation in self.on_operation

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Webhook":
        """Create a Webhook from a YAML/JSON dict.

        Accepts ``onOperation`` or ``on``. PyYAML parses a bare ``on:``
        key as boolean True, so that key is checked too. Header values
        are sent as strings (YAML may parse them as numbers).
        """
        operations = data.get("onOperation") or data.get("on") or data.get(True, [])
        if isinstance(operations, str):
            operations = [operations]

        return cls(
            name=data["name"],
            api=data["api"],
            on_operation=tuple(Operation(op) for op in operations),
            headers={str(k): str(v) for k, v in (data.get("headers") or {}).items()},
        )


def build_envelope(
    operation: Operation,
    collection_name: str,
    collection_slug: str,
    result: Any,
    timestamp: datetime | None = None,
) -> dict[str, Any]:
    """Build the event envelope sent to webhooks.

    ``data`` is None when the operation produced an empty result.
    """
    when = timestamp or datetime.now(UTC)
    return {
        "event": operation.value,
        "collection": {"name": collection_name, "slug": collection_slug},
        "data": result if result else None,
        "timestamp": when.isoformat(),
    }
