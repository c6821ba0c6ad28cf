"""
WebSocket Message Broker for Beacon.

This module pushes weather bundles to connected WebSocket clients and
answers simple client requests (ping, status, latest bundle).
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket

from ..models.weather import WeatherBundle
from ..utils.timing import utc_now

logger = logging.getLogger(__name__)

StatusProvider = Callable[[], dict[str, Any]]
BundleProvider = Callable[[], Optional[WeatherBundle]]


class MessageType(str, Enum):
    """Types of WebSocket messages."""
    # Server -> Client
    WEATHER_UPDATE = "weather_update"
    POLL_STATUS = "poll_status"
    CONNECTION_ACK = "connection_ack"
    ERROR = "error"
    PONG = "pong"

    # Client -> Server
    PING = "ping"
    GET_STATUS = "get_status"
    GET_WEATHER = "get_weather"


@dataclass
class ClientConnection:
    """A connected WebSocket client."""
    websocket: WebSocket
    client_id: str
    connected_at: datetime = field(default_factory=utc_now)
    last_ping: Optional[datetime] = None


class MessageBroker:
    """
    Broadcasts weather bundles to WebSocket clients.

    Status and latest-bundle requests are answered through providers
    supplied by the application (typically the weather poller).
    """

    def __init__(
        self,
        status_provider: Optional[StatusProvider] = None,
        bundle_provider: Optional[BundleProvider] = None,
    ):
        self._connections: dict[str, ClientConnection] = {}
        self._connection_counter = 0
        self._status_provider = status_provider
        self._bundle_provider = bundle_provider
        self._message_handlers: dict[str, Callable[[ClientConnection, dict], Awaitable[None]]] = {
            MessageType.PING.value: self._handle_ping,
            MessageType.GET_STATUS.value: self._handle_get_status,
            MessageType.GET_WEATHER.value: self._handle_get_weather,
        }

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept a new WebSocket connection.

        Returns:
            Client ID for the connection
        """
        await websocket.accept()

        self._connection_counter += 1
        client_id = f"client_{self._connection_counter}_{utc_now().strftime('%H%M%S')}"

        connection = ClientConnection(websocket=websocket, client_id=client_id)
        self._connections[client_id] = connection

        logger.info(f"Client connected: {client_id} (total: {len(self._connections)})")

        await self._send_to_client(connection, MessageType.CONNECTION_ACK, {
            "client_id": client_id,
            "server_time": utc_now().isoformat(),
        })

        return client_id

    async def disconnect(self, client_id: str):
        """Forget a client and close its socket if still open."""
        connection = self._connections.pop(client_id, None)
        if connection:
            logger.info(f"Client disconnected: {client_id} (total: {len(self._connections)})")
            try:
                await connection.websocket.close()
            except Exception as e:
                logger.debug(f"Socket for {client_id} already closed: {e}")

    @property
    def connection_count(self) -> int:
        """Get number of connected clients."""
        return len(self._connections)

    def get_all_client_ids(self) -> list[str]:
        return list(self._connections.keys())

    # =========================================================================
    # Message Handling
    # =========================================================================

    async def handle_message(self, client_id: str, raw_message: str):
        """
        Handle an incoming message from a client.

        Args:
            client_id: Client ID that sent the message
            raw_message: Raw JSON message string
        """
        connection = self._connections.get(client_id)
        if not connection:
            logger.warning(f"Message from unknown client: {client_id}")
            return

        try:
            message = json.loads(raw_message)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON from {client_id}: {e}")
            await self._send_to_client(connection, MessageType.ERROR, {"error": "Invalid JSON format"})
            return

        if not isinstance(message, dict):
            await self._send_to_client(connection, MessageType.ERROR, {"error": "Invalid message"})
            return

        msg_type = message.get("type")
        handler = self._message_handlers.get(msg_type)
        if handler is None:
            logger.debug(f"Unhandled message type: {msg_type}")
            await self._send_to_client(connection, MessageType.ERROR, {
                "error": f"Unknown message type: {msg_type}"
            })
            return

        try:
            await handler(connection, message.get("data") or {})
        except Exception as e:
            logger.error(f"Error handling message from {client_id}: {e}")

    async def _handle_ping(self, connection: ClientConnection, data: dict):
        connection.last_ping = utc_now()
        await self._send_to_client(connection, MessageType.PONG, {
            "timestamp": connection.last_ping.isoformat()
        })

    async def _handle_get_status(self, connection: ClientConnection, data: dict):
        status = self._status_provider() if self._status_provider else {}
        await self._send_to_client(connection, MessageType.POLL_STATUS, {
            **status,
            "connected_clients": len(self._connections),
        })

    async def _handle_get_weather(self, connection: ClientConnection, data: dict):
        bundle = self._bundle_provider() if self._bundle_provider else None
        if bundle is None:
            await self._send_to_client(connection, MessageType.ERROR, {"error": "No weather data yet"})
            return
        await self._send_to_client(connection, MessageType.WEATHER_UPDATE, bundle.to_dict())

    # =========================================================================
    # Broadcasting
    # =========================================================================

    async def broadcast_weather_update(self, bundle: WeatherBundle):
        """Broadcast a weather bundle to all clients."""
        await self._broadcast(MessageType.WEATHER_UPDATE, bundle.to_dict())

    async def send_weather_update(self, client_id: str, bundle: WeatherBundle):
        """Send a weather bundle to one client (e.g. on connect)."""
        connection = self._connections.get(client_id)
        if connection:
            await self._send_to_client(connection, MessageType.WEATHER_UPDATE, bundle.to_dict())
        else:
            logger.warning(f"Client not found: {client_id}")

    async def _broadcast(self, msg_type: MessageType, data: Any):
        """Broadcast a message to all connected clients, dropping dead ones."""
        if not self._connections:
            return

        message = self._format_message(msg_type, data)
        disconnected = []

        for client_id, connection in list(self._connections.items()):
            try:
                await connection.websocket.send_text(message)
            except Exception as e:
                logger.warning(f"Failed to send to {client_id}: {e}")
                disconnected.append(client_id)

        for client_id in disconnected:
            await self.disconnect(client_id)

    async def _send_to_client(self, connection: ClientConnection, msg_type: MessageType, data: Any):
        try:
            await connection.websocket.send_text(self._format_message(msg_type, data))
        except Exception as e:
            logger.warning(f"Failed to send to {connection.client_id}: {e}")
            await self.disconnect(connection.client_id)

    @staticmethod
    def _format_message(msg_type: MessageType, data: Any) -> str:
        """Format a message for sending."""
        return json.dumps({
            "type": msg_type.value,
            "data": data,
            "timestamp": utc_now().isoformat(),
        })
