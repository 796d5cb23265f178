"""Per-request context and the process-wide state it is built from.

``AppState`` holds what every request shares (persistence handle,
collection registry, plugin registry, services). A fresh
``RequestContext`` is built from it for each request, so concurrent
requests never share mutable per-request state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from collectra.hooks.types import HookPhase

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

    from collectra.config import AppConfig
    from collectra.hooks.service import HookService
    from collectra.metadata.loader import Collection, CollectionRegistry
    from collectra.persistence.adapter import PersistenceAdapter
    from collectra.plugins.registry import PluginRegistry
    from collectra.webhooks.service import WebhookService
    from collectra.webhooks.types import Webhook

LOOPBACK_HOSTS = ("127.0.0.1", "::1", "localhost")

# Fields hooks may assign during their own invocation.
_WRITABLE = frozenset({"request", "response", "custom_vars", "current_hook"})


@dataclass(frozen=True)
class ContextFlags:
    """Boolean facts about the current request."""

    is_local: bool = False


@dataclass
class RequestContext:
    """State threaded through one request's hook chain.

    Only ``custom_vars``, ``request`` and ``response`` are meant to be
    written by hooks; assigning any other attribute raises
    AttributeError. Plugins that need to change more return a new
    context built with ``dataclasses.replace``.

    Attributes:
        db: Persistence adapter (shared, read-only)
        collections: Collection registry (shared, read-only)
        request: The inbound Starlette request
        response: A Response a hook may set; returned verbatim on denial
        session_data: Session claims, or None when unauthenticated
        flags: Boolean request facts
        current_hook: Phase currently executing
        custom_vars: Free-form values passed from earlier to later hooks
    """

    db: PersistenceAdapter
    collections: Mapping[str, Collection]
    request: Request | None = None
    response: Response | None = None
    session_data: Mapping[str, Any] | None = None
    flags: ContextFlags = field(default_factory=ContextFlags)
    current_hook: HookPhase = HookPhase.BEFORE_OPERATION
    custom_vars: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.session_data is not None and not isinstance(self.session_data, MappingProxyType):
            object.__setattr__(self, "session_data", MappingProxyType(dict(self.session_data)))
        object.__setattr__(self, "_sealed", True)

    def __setattr__(self, name: str, value: Any) -> None:
        if name not in _WRITABLE and getattr(self, "_sealed", False):
            raise AttributeError(
                f"RequestContext.{name} is read-only; store values in custom_vars"
            )
        object.__setattr__(self, name, value)


@dataclass
class AppState:
    """Process-wide state, created once at startup and shared read-only."""

    config: AppConfig
    db: PersistenceAdapter
    collections: CollectionRegistry
    plugins: PluginRegistry
    hook_service: HookService
    webhook_service: WebhookService
    global_webhooks: tuple[Webhook, ...] = ()

    def new_context(
        self,
        request: Request | None = None,
        session_data: Mapping[str, Any] | None = None,
    ) -> RequestContext:
        """Build a fresh context for one request."""
        client_host = request.client.host if request is not None and request.client else None
        return RequestContext(
            db=self.db,
            collections=self.collections,
            request=request,
            session_data=session_data,
            flags=ContextFlags(is_local=client_host in LOOPBACK_HOSTS),
        )

    def webhooks_for(self, collection: Collection) -> tuple[Webhook, ...]:
        """Global webhooks followed by the collection's own."""
        return self.global_webhooks + tuple(collection.webhooks)
