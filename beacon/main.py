"""
Main Application Entry Point for Beacon.

This module wires the weather alert engine into a FastAPI service:
- REST endpoints to start/stop monitoring and query alerts
- WebSocket endpoint pushing every weather bundle to clients
- Service lifecycle management (startup/shutdown)
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from .config import Settings, get_settings
from .models.alert import ThreatLevel
from .models.weather import InvalidLocationError, WeatherBundle
from .services import (
    AlertFetcher,
    AlertSubscription,
    MessageBroker,
    NWSAPIClient,
    WeatherPoller,
)
from .utils.logging import get_logger, get_poller_logger, setup_logging
from .utils.timing import utc_now

logger = get_logger(__name__)


class MonitorRequest(BaseModel):
    """Location to monitor."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None


class VisibilityRequest(BaseModel):
    """Application visibility change."""
    hidden: bool


# =============================================================================
# Application Lifecycle
# =============================================================================

def build_poller(settings: Settings, fetcher: Optional[AlertFetcher] = None) -> WeatherPoller:
    """Construct the fetcher and poller from settings."""
    if fetcher is None:
        client = NWSAPIClient(
            base_url=settings.nws_api_base_url,
            user_agent=settings.nws_api_user_agent,
            timeout=settings.nws_api_timeout,
            points_timeout=settings.nws_points_timeout,
        )
        fetcher = AlertFetcher(
            client=client,
            cache_ttl=settings.alert_cache_ttl_seconds,
            max_attempts=settings.nws_api_retry_count,
            backoff_seconds=settings.nws_retry_backoff_seconds,
            imminent_threshold_seconds=settings.imminent_threshold_seconds,
        )

    return WeatherPoller(
        fetcher=fetcher,
        poll_intervals=settings.poll_intervals,
        escalation_delay=settings.escalation_delay_seconds,
        max_retries=settings.poll_max_retries,
        backoff_base=settings.poll_backoff_base_seconds,
        backoff_max=settings.poll_backoff_max_seconds,
        poll_logger=get_poller_logger(settings.debug_weather),
    )


def wire_broadcasts(poller: WeatherPoller, broker: MessageBroker):
    """Push every bundle the poller delivers to WebSocket clients."""

    def on_weather_update(bundle: WeatherBundle):
        # Poller callbacks are synchronous
        asyncio.create_task(broker.broadcast_weather_update(bundle))

    poller.add_callback(on_weather_update)
    logger.info("Weather updates wired to message broker")


def create_app(
    settings: Optional[Settings] = None,
    fetcher: Optional[AlertFetcher] = None,
    poller: Optional[WeatherPoller] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings (default from environment)
        fetcher: Alert fetcher to poll with (default built from settings)
        poller: Fully constructed poller (overrides fetcher)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=settings.log_level,
            json_output=settings.log_json or settings.is_production,
            debug_weather=settings.debug_weather,
        )
        logger.info("Starting Beacon...")

        weather_poller = poller or build_poller(settings, fetcher)
        broker = MessageBroker(
            status_provider=weather_poller.get_status,
            bundle_provider=lambda: weather_poller.last_weather_data,
        )
        wire_broadcasts(weather_poller, broker)

        app.state.poller = weather_poller
        app.state.broker = broker
        app.state.subscription = AlertSubscription(weather_poller)

        yield

        logger.info("Shutting down services...")
        await weather_poller.close()
        await weather_poller.fetcher.close()
        logger.info("Beacon stopped")

    app = FastAPI(
        title="Beacon",
        description="Adaptive NWS weather alert polling engine",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app, settings)
    return app


# =============================================================================
# REST API Endpoints
# =============================================================================

def register_routes(app: FastAPI, settings: Settings):
    """Attach HTTP and WebSocket routes."""

    @app.get("/")
    async def root():
        return {
            "name": "Beacon",
            "version": __version__,
            "status": "running",
        }

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        poller: WeatherPoller = request.app.state.poller
        broker: MessageBroker = request.app.state.broker

        return {
            "status": "healthy",
            "timestamp": utc_now().isoformat(),
            "services": {
                "poller": {
                    "is_polling": poller.is_polling,
                    "poll_mode": poller.current_poll_mode.value,
                },
                "websocket": {
                    "connected_clients": broker.connection_count,
                },
            },
        }

    @app.get("/api/status")
    async def get_system_status(request: Request):
        """Get detailed poller and subscription status."""
        subscription: AlertSubscription = request.app.state.subscription
        broker: MessageBroker = request.app.state.broker

        return {
            "timestamp": utc_now().isoformat(),
            "environment": settings.environment,
            "poller": subscription.get_polling_status(),
            "subscription": {
                "connection_status": subscription.connection_status.value,
                "error": subscription.error,
                "alert_count": len(subscription.alerts),
            },
            "websocket": {
                "clients": broker.connection_count,
            },
            "config": {
                "poll_intervals": settings.poll_intervals,
                "alert_cache_ttl": settings.alert_cache_ttl_seconds,
            },
        }

    @app.post("/api/monitor")
    async def start_monitoring(body: MonitorRequest, request: Request):
        """Start monitoring a location (replaces any current location)."""
        subscription: AlertSubscription = request.app.state.subscription
        await subscription.start_monitoring(body.model_dump())
        return subscription.to_dict()

    @app.delete("/api/monitor")
    async def stop_monitoring(request: Request):
        """Stop monitoring."""
        subscription: AlertSubscription = request.app.state.subscription
        subscription.stop_monitoring()
        return {"status": "stopped"}

    @app.post("/api/refresh")
    async def refresh(request: Request):
        """Force an immediate update."""
        subscription: AlertSubscription = request.app.state.subscription
        if subscription.location is None:
            raise HTTPException(status_code=409, detail="No location is being monitored")
        await subscription.refresh_alerts()
        return subscription.to_dict()

    @app.post("/api/visibility")
    async def set_visibility(body: VisibilityRequest, request: Request):
        """Background or foreground the application."""
        poller: WeatherPoller = request.app.state.poller
        await poller.handle_visibility_change(body.hidden)
        return poller.get_status()

    @app.get("/api/alerts")
    async def get_alerts(
        request: Request,
        threat_level: Optional[ThreatLevel] = Query(None, description="Filter by threat level"),
    ):
        """
        Get last-known alerts in priority order.

        Returns the alerts of the monitored location, optionally filtered.
        """
        subscription: AlertSubscription = request.app.state.subscription

        if threat_level:
            alerts = subscription.get_alerts_by_severity(threat_level)
        else:
            alerts = list(subscription.alerts)

        return {
            "count": len(alerts),
            "alerts": [alert.to_dict() for alert in alerts],
            "error": subscription.error,
        }

    @app.get("/api/alerts/most-urgent")
    async def get_most_urgent_alert(request: Request):
        subscription: AlertSubscription = request.app.state.subscription
        alert = subscription.get_most_urgent_alert()
        return {
            "alert": alert.to_dict() if alert else None,
            "time_to_impact": subscription.format_time_to_impact(alert.time_to_impact) if alert else None,
        }

    @app.get("/api/alerts/summary")
    async def get_alert_summary(request: Request):
        """Get alert counts per threat level and the emergency flags."""
        subscription: AlertSubscription = request.app.state.subscription
        return {
            "total": len(subscription.alerts),
            "counts": {
                level.value: len(subscription.get_alerts_by_severity(level)) for level in ThreatLevel
            },
            "has_critical": subscription.has_critical_alerts(),
            "has_evacuation": subscription.has_evacuation_recommendation(),
            "poll_mode": subscription.poll_mode.value,
        }

    # =========================================================================
    # WebSocket Endpoint
    # =========================================================================

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """
        WebSocket endpoint for real-time weather updates.

        Clients receive a weather_update message for every bundle, starting
        with the latest one (if any) on connect.
        """
        broker: MessageBroker = websocket.app.state.broker
        poller: WeatherPoller = websocket.app.state.poller
        client_id = await broker.connect(websocket)

        try:
            if poller.last_weather_data is not None:
                await broker.send_weather_update(client_id, poller.last_weather_data)

            while True:
                try:
                    message = await websocket.receive_text()
                    await broker.handle_message(client_id, message)
                except WebSocketDisconnect:
                    break

        except Exception as e:
            logger.error(f"WebSocket error for {client_id}: {e}")
        finally:
            await broker.disconnect(client_id)

    # =========================================================================
    # Error Handlers
    # =========================================================================

    @app.exception_handler(InvalidLocationError)
    async def invalid_location_handler(request: Request, exc: InvalidLocationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler."""
        logger.error(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "beacon.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
