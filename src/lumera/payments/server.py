"""HTTP API: Stripe webhook, checkout, subscription status and cancellation."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Optional

import stripe
from aiohttp import web

from lumera.config.settings import AppConfig, get_config
from lumera.payments.checkout import create_checkout_session
from lumera.payments.errors import CheckoutError
from lumera.payments.store import SubscriptionStore
from lumera.payments.subscriptions import cancel_subscription, get_subscription_status
from lumera.payments.webhooks import handle_webhook

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/webhook/stripe"


def _add_cors_headers(headers, origin: str) -> None:
    headers["Access-Control-Allow-Origin"] = origin
    headers["Access-Control-Allow-Credentials"] = "true"
    headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    headers["Vary"] = "Origin"


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Allow browser calls from the configured frontend origins."""
    origin = request.headers.get("Origin")
    allowed = origin is not None and origin in request.app["config"].cors_origins

    if request.method == "OPTIONS":
        response = web.Response(status=204 if allowed else 403)
    else:
        try:
            response = await handler(request)
        except web.HTTPException as e:
            # Raised 4xx responses such as 400 and 404 get the headers too
            if allowed:
                _add_cors_headers(e.headers, origin)
            raise

    if allowed:
        _add_cors_headers(response.headers, origin)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Turn uncaught exceptions into a JSON 500."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
        body = {"error": "Internal server error"}
        if request.app["config"].env == "dev":
            body["message"] = str(e)
        return web.json_response(body, status=500)


async def _json_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "Invalid JSON body"}),
            content_type="application/json",
        )
    if not isinstance(body, dict):
        raise web.HTTPBadRequest(
            text=json.dumps({"error": "JSON object expected"}),
            content_type="application/json",
        )
    return body


def _stripe_error_response(e: stripe.StripeError) -> web.Response:
    return web.json_response(
        {"error": e.user_message or str(e), "type": type(e).__name__},
        status=500,
    )


async def webhook_endpoint(request: web.Request) -> web.Response:
    """Handle POST /webhook/stripe.

    The body is read as raw bytes; the signature covers them exactly.
    """
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        logger.error("Missing Stripe-Signature header")
        return web.json_response({"error": "Webhook Error: Missing signature"}, status=400)

    payload = await request.read()

    return await handle_webhook(
        payload,
        sig_header,
        request.app["store"],
        request.app["config"].stripe_webhook_secret.get_secret_value(),
    )


async def checkout_endpoint(request: web.Request) -> web.Response:
    """Handle POST /create-checkout-session."""
    body = await _json_body(request)
    user_id = body.get("userId")
    price_id = body.get("priceId")
    email = body.get("email") or body.get("userEmail")

    logger.info(
        f"Checkout requested: user={user_id}, email={email}, "
        f"region={body.get('region')}, price={price_id}"
    )

    try:
        session = await create_checkout_session(
            request.app["store"],
            user_id=user_id,
            price_id=price_id,
            email=email,
            region=body.get("region"),
            apply_coupon=bool(body.get("applyCoupon")),
        )
    except CheckoutError as e:
        return web.json_response({"error": str(e)}, status=e.status_code)
    except stripe.StripeError as e:
        logger.error(f"Error creating checkout session for {user_id}: {e}")
        return _stripe_error_response(e)

    return web.json_response(
        {
            "success": True,
            "sessionId": session.session_id,
            "url": session.url,
        }
    )


async def subscription_status_endpoint(request: web.Request) -> web.Response:
    """Handle GET /subscription/{user_id}."""
    user_id = request.match_info["user_id"]
    snapshot = await get_subscription_status(request.app["store"], user_id)
    if snapshot is None:
        return web.json_response({"error": "User not found"}, status=404)
    return web.json_response(snapshot)


async def cancel_endpoint(request: web.Request) -> web.Response:
    """Handle POST /api/cancel-subscription."""
    body = await _json_body(request)
    user_id = body.get("userId")

    try:
        subscription_id = await cancel_subscription(request.app["store"], user_id)
    except CheckoutError as e:
        return web.json_response({"error": str(e)}, status=e.status_code)
    except stripe.StripeError as e:
        logger.error(f"Error cancelling subscription for {user_id}: {e}")
        return _stripe_error_response(e)

    return web.json_response(
        {
            "success": True,
            "subscriptionId": subscription_id,
            "message": "Subscription cancelled",
        }
    )


async def prices_endpoint(request: web.Request) -> web.Response:
    """Handle GET /api/prices."""
    config = request.app["config"]
    return web.json_response(
        {
            "prices": {
                "latam": {
                    "id": config.stripe_price_latam_monthly,
                    "price": "$4.99",
                    "currency": "USD",
                    "region": "Latin America",
                },
                "emea": {
                    "id": config.stripe_price_emea_monthly,
                    "price": "€4.99",
                    "currency": "EUR",
                    "region": "Europe/EMEA",
                },
                "usa": {
                    "id": config.stripe_price_usa_monthly,
                    "price": "$6.99",
                    "currency": "USD",
                    "region": "USA/Canada",
                },
            }
        }
    )


async def health_endpoint(request: web.Request) -> web.Response:
    """Handle GET /health."""
    return web.json_response(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": request.app["config"].env,
        }
    )


async def create_app(
    store: SubscriptionStore,
    config: Optional[AppConfig] = None,
) -> web.Application:
    """Create the aiohttp application with all routes.

    Args:
        store: Subscription store shared by all requests
        config: Application config; defaults to the process-wide one

    Returns:
        Configured aiohttp Application
    """
    config = config or get_config()
    stripe.api_key = config.stripe_secret.get_secret_value()

    app = web.Application(middlewares=[cors_middleware, error_middleware])
    app["config"] = config
    app["store"] = store

    app.router.add_post(WEBHOOK_PATH, webhook_endpoint)
    app.router.add_get("/health", health_endpoint)
    app.router.add_get("/api/prices", prices_endpoint)
    app.router.add_post("/api/cancel-subscription", cancel_endpoint)
    # Both path spellings were in use by deployed frontends
    for prefix in ("", "/api"):
        app.router.add_post(f"{prefix}/create-checkout-session", checkout_endpoint)
        app.router.add_get(f"{prefix}/subscription/{{user_id}}", subscription_status_endpoint)

    return app


async def run_server(
    store: SubscriptionStore,
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """Run the HTTP server until shutdown signal.

    Args:
        store: Subscription store
        shutdown_event: Optional event to signal shutdown
    """
    config = get_config()
    app = await create_app(store, config)

    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, config.webhook_server_host, config.webhook_server_port)
    await site.start()

    base = f"http://{config.webhook_server_host}:{config.webhook_server_port}"
    logger.info(f"Backend listening on {base}")
    logger.info(f"Webhook: {base}{WEBHOOK_PATH}")
    logger.info(f"Health: {base}/health")

    if shutdown_event:
        await shutdown_event.wait()
    else:
        await asyncio.Event().wait()

    logger.info("Shutting down server...")
    await runner.cleanup()
