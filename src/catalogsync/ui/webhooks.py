"""Inbound platform webhooks.

Usage:
    uvicorn catalogsync.ui.webhooks:create_app --factory --port 8000
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from logging import getLogger
from typing import Any, cast

from fastapi import APIRouter, Body, FastAPI, HTTPException, Request, status
from pydantic import ValidationError

from catalogsync.adapters.woocommerce import INBOUND_TRANSLATORS
from catalogsync.app import CatalogApplication, build_application
from catalogsync.domain.model import EntityKind

log = getLogger(__name__)

DELIVERY_HEADER = "x-wc-webhook-delivery-id"
TOPIC_HEADER = "x-wc-webhook-topic"

router = APIRouter(prefix="/woo-webhook", tags=["webhooks"])


def get_application(request: Request) -> CatalogApplication:
    application: CatalogApplication = request.app.state.catalog
    return application


def is_ping(body: object) -> bool:
    """WooCommerce sends ``{"webhook_id": ...}`` when a webhook is first saved."""

    if not isinstance(body, dict):
        return False
    keys = cast(dict[str, Any], body).keys()
    return "webhook_id" in keys and "id" not in keys and "data" not in keys


def _has_id(candidate: object) -> bool:
    if not isinstance(candidate, dict):
        return False
    identifier = cast(dict[str, Any], candidate).get("id")
    if isinstance(identifier, bool):
        return False
    return isinstance(identifier, int | str) and identifier != ""


def extract_resource(body: object, kind: EntityKind) -> Mapping[str, Any] | None:
    """Find the resource in the shapes platforms are known to send."""

    if isinstance(body, list):
        items = cast(list[Any], body)
        if not items:
            return None
        first = items[0]
        if _has_id(first):
            return cast(dict[str, Any], first)
        if isinstance(first, dict) and _has_id(first.get("data")):
            return cast(dict[str, Any], first["data"])
        return None
    if not isinstance(body, dict):
        return None
    payload = cast(dict[str, Any], body)
    if _has_id(payload):
        return payload
    data = payload.get("data")
    if _has_id(data):
        return cast(dict[str, Any], data)
    if isinstance(data, list) and data and _has_id(data[0]):
        return cast(dict[str, Any], data[0])
    wrapped = payload.get(kind.value)
    if _has_id(wrapped):
        return cast(dict[str, Any], wrapped)
    return None


@router.post("/{kind}/{platform}")
async def receive(
    kind: EntityKind,
    platform: str,
    request: Request,
    body: Any = Body(default=None),  # noqa: B008
) -> dict[str, Any]:
    application = get_application(request)
    if platform not in application.gateways:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Unknown platform {platform}")
    translate = INBOUND_TRANSLATORS.get(kind)
    if translate is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"No webhook for {kind}")

    if is_ping(body):
        log.info("Webhook ping for %s from %s (webhook_id: %s)", kind, platform, body["webhook_id"])
        return {"success": True, "ping": True, "webhook_id": body["webhook_id"]}

    topic = request.headers.get(TOPIC_HEADER, "")
    if topic.endswith(".deleted"):
        log.info("Ignoring %s from %s: deletions only flow outbound", topic, platform)
        return {"success": True, "ignored": topic}

    resource = extract_resource(body, kind)
    if resource is None:
        log.error("Unrecognised %s webhook body from %s: %r", kind, platform, body)
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            detail="Expected an object with id or data.id",
        )

    try:
        record = translate(resource)
    except (ValidationError, ValueError, TypeError) as exc:
        log.warning("Cannot translate %s %s from %s: %s", kind, resource.get("id"), platform, exc)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    result = await application.catalog.apply_inbound(
        record, platform, delivery_id=request.headers.get(DELIVERY_HEADER)
    )
    response: dict[str, Any] = {
        "success": True,
        "duplicate": result.duplicate,
        "created": result.created,
    }
    if result.entity is not None:
        response["document_id"] = result.entity.document_id
    if result.report is not None:
        response["synced"] = result.report.succeeded
        response["failed"] = result.report.failed
    return response


def create_app(application: CatalogApplication | None = None) -> FastAPI:
    """Build the webhook app; without ``application`` one is wired from the environment."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        owned = application is None
        if owned:
            app.state.catalog = build_application()
        log.info("Webhook server ready for %s", sorted(app.state.catalog.gateways))
        yield
        if owned:
            await app.state.catalog.aclose()

    app = FastAPI(title="catalogsync webhooks", lifespan=lifespan)
    app.include_router(router)
    if application is not None:
        app.state.catalog = application

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return app
