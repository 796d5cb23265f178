"""FastAPI application."""

import json
import logging
from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from collectra import __version__
from collectra.auth import JWTService, SessionResolver
from collectra.config import AppConfig
from collectra.context import AppState
from collectra.core.types import resolve_operation
from collectra.dispatch import OperationDispatcher
from collectra.errors import LOG_LEVELS, CollectraError, MalformedInput, UnhandledError
from collectra.hooks import register_builtin_hooks
from collectra.hooks.service import HookService
from collectra.logging_setup import configure_logging
from collectra.metadata.loader import Collection, MetadataLoader, build_registry
from collectra.persistence import PersistenceAdapter, create_adapter
from collectra.plugins import Plugin, PluginRegistry, PluginStore
from collectra.webhooks import Webhook, WebhookService, build_envelope

logger = logging.getLogger(__name__)

NOT_FOUND = {"message": "Not Found."}
ACCESS_DENIED = {"success": False, "message": "Access denied."}

COLLECTION_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

PLUGIN_ACTIONS = {
    "enable": "Enabled",
    "disable": "Disabled",
    "install": "Installed",
    "uninstall": "Uninstalled",
}


def get_state(request: Request) -> AppState:
    """The AppState built at startup."""
    return request.app.state.collectra


def error_response(exc: CollectraError) -> JSONResponse:
    """Log an error at its level and render the JSON error body."""
    logger.log(
        LOG_LEVELS[exc.level],
        "%s: %s",
        type(exc).__name__,
        exc.message,
        exc_info=exc if exc.level == "error" else None,
    )
    return JSONResponse(
        status_code=exc.status,
        content={"success": False, "message": exc.message},
    )


async def read_body(request: Request) -> Any:
    """Parse the JSON body; an empty body is an empty object."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        raise MalformedInput("Malformed JSON in the request body.") from None


def create_app(
    config: AppConfig | None = None,
    collections: Sequence[Collection] | None = None,
    plugins: Sequence[Plugin] = (),
    global_webhooks: Sequence[Webhook] = (),
    adapter: PersistenceAdapter | None = None,
    extend_app: Callable[[FastAPI], None] | None = None,
    webhook_service: WebhookService | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        config: Runtime settings (default: from COLLECTRA_* environment)
        collections: Collections declared in Python; when None they are
            loaded from ``config.metadata_path``
        plugins: Plugins registered in-process, in registration order
        global_webhooks: Webhooks fired for every collection
        adapter: Persistence adapter (default: from ``config.database``)
        extend_app: Called with the app to add routes before the
            collection routes; handlers reach AppState through
            ``request.app.state.collectra``
        webhook_service: Delivery service (default: built from config)
    """
    config = config or AppConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize on startup, cleanup on shutdown."""
        configure_logging(config.log_file, config.log_level)
        register_builtin_hooks()

        webhooks = list(global_webhooks)
        if collections is None:
            loader = MetadataLoader(config.metadata_path)
            loader.load_all()
            registry = loader.build_registry(config.users_slug)
            webhooks = loader.webhooks + webhooks
        else:
            registry = build_registry(list(collections), config.users_slug)

        config.database.ensure_directory()

        db = adapter or create_adapter(config.database)
        db.connect()
        db.initialize(registry)

        plugin_store = PluginStore(config.database.sqlalchemy_url)
        plugin_registry = PluginRegistry(plugin_store, tuple(plugins))
        plugin_registry.load()

        webhook_svc = webhook_service or WebhookService(timeout=config.webhook_timeout)
        webhook_svc.register(webhooks, "*")
        for collection in registry.values():
            webhook_svc.register(collection.webhooks, collection.name)

        app.state.collectra = AppState(
            config=config,
            db=db,
            collections=registry,
            plugins=plugin_registry,
            hook_service=HookService(timeout=config.hook_timeout),
            webhook_service=webhook_svc,
            global_webhooks=tuple(webhooks),
        )
        app.state.sessions = SessionResolver(
            JWTService(config.secret_key) if config.auth_enabled else None
        )
        logger.info(
            "Collectra %s serving %d collection(s): %s",
            __version__,
            len(registry),
            ", ".join(f"/{slug}" for slug in registry.slugs()),
        )

        yield

        # Cleanup
        plugin_store.close()
        db.close()

    app = FastAPI(title="Collectra API", version=__version__, lifespan=lifespan)

    # --- Error boundary ---

    @app.exception_handler(CollectraError)
    async def collectra_error_handler(request: Request, exc: CollectraError) -> JSONResponse:
        return error_response(exc)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        wrapped = UnhandledError(str(exc) or type(exc).__name__)
        wrapped.__cause__ = exc
        return error_response(wrapped)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content=NOT_FOUND)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
        )

    # --- Index and health ---

    @app.get("/")
    async def index(request: Request) -> dict[str, Any]:
        """List installed plugins and collection routes."""
        state = get_state(request)
        return {
            "plugins": state.plugins.list_plugins(),
            "collections": [f"/{slug}" for slug in state.collections.slugs()],
        }

    if config.health_path:

        @app.get(config.health_path)
        async def health() -> dict[str, Any]:
            return {"status": "ok", **config.health_data}

    # --- Plugins ---

    @app.get("/plugins")
    async def list_plugins(request: Request) -> dict[str, Any]:
        return {"plugins": get_state(request).plugins.list_plugins()}

    @app.get("/plugins/{title}/{action}")
    async def plugin_action(
        request: Request, title: str, action: str, target: str | None = None
    ) -> Response:
        """Enable, disable, install or uninstall a plugin by title."""
        if action not in PLUGIN_ACTIONS:
            return JSONResponse(status_code=404, content=NOT_FOUND)

        registry = get_state(request).plugins
        if action == "install":
            await registry.install(title, target=target)
        else:
            await getattr(registry, action)(title)

        return JSONResponse(
            {"message": f"{PLUGIN_ACTIONS[action]} plugin: {title}."}
        )

    if extend_app is not None:
        extend_app(app)

    # --- Collections ---

    @app.api_route("/{slug}", methods=COLLECTION_METHODS)
    async def collection_route(request: Request, slug: str) -> Response:
        """Dispatch a request against a collection by HTTP method."""
        state = get_state(request)
        collection = state.collections.by_slug(slug)
        operation = resolve_operation(request.method)
        if collection is None or operation is None:
            return JSONResponse(status_code=404, content=NOT_FOUND)

        try:
            input_data = None if request.method == "GET" else await read_body(request)
            ctx = state.new_context(request, request.app.state.sessions.resolve(request))
            outcome = await OperationDispatcher(state.hook_service).dispatch(
                collection,
                operation,
                ctx,
                input_data=input_data,
                query=dict(request.query_params),
                plugins=state.plugins.active,
                is_cancelled=request.is_disconnected,
            )
        except CollectraError:
            raise
        except Exception as e:
            # Handled by ExceptionMiddleware; the Exception handler above runs
            # in ServerErrorMiddleware, which re-raises after responding.
            raise UnhandledError(str(e) or type(e).__name__) from e

        if outcome.denied:
            if outcome.ctx is not None and outcome.ctx.response is not None:
                return outcome.ctx.response
            return JSONResponse(status_code=403, content=ACCESS_DENIED)

        body = jsonable_encoder(outcome.result)
        envelope = build_envelope(
            operation, collection.name, collection.route_slug, body
        )
        targets = [w for w in state.webhooks_for(collection) if w.fires_on(operation)]
        background = (
            BackgroundTask(state.webhook_service.fan_out, envelope, targets, operation)
            if targets
            else None
        )
        return JSONResponse(content=body, background=background)

    return app


app = create_app()
