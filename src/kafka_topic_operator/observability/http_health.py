"""Liveness and readiness endpoints for the operator Deployment.

``/healthz`` answers 200 while the event loop is alive.  ``/readyz`` returns
``Operator.health()``, shaped like::

    {"controller": {"status": "running", "resources": 3,
                    "active_workers": 1, "last_error": null}}

and answers 503 while the controller reports ``"status": "error"``: before the
first list+watch succeeds, or after a watch session failed and is backing off.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import suppress
from http import HTTPStatus
from typing import Any

import structlog

logger = structlog.get_logger()

ReadinessCheck = Callable[[], Awaitable[dict[str, Any]]]


class HealthServer:
    """Async TCP server that answers the liveness and readiness endpoints."""

    def __init__(
        self,
        port: int,
        readiness_check: ReadinessCheck,
        host: str = "0.0.0.0",  # noqa: S104
    ) -> None:
        self._host = host
        self._port = port
        self._readiness_check = readiness_check
        self._server: asyncio.Server | None = None

    @property
    def port(self) -> int:
        return self._port

    async def start(self) -> None:
        self._server = await asyncio.start_server(
            self._handle, host=self._host, port=self._port
        )
        logger.info("health.server_started", port=self._port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("health.server_stopped")

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            request_line = await asyncio.wait_for(reader.readline(), timeout=5.0)
            path = self._parse_path(request_line)
            if path == "/healthz":
                await self._respond(writer, HTTPStatus.OK, {"status": "ok"})
            elif path == "/readyz":
                health = await self._readiness_check()
                status = (
                    HTTPStatus.SERVICE_UNAVAILABLE
                    if self._contains_error(health)
                    else HTTPStatus.OK
                )
                await self._respond(writer, status, health)
            else:
                await self._respond(writer, HTTPStatus.NOT_FOUND, {"error": "not found"})
        except Exception:
            logger.debug("health.request_error", exc_info=True)
            with suppress(Exception):
                await self._respond(
                    writer,
                    HTTPStatus.INTERNAL_SERVER_ERROR,
                    {"error": "internal server error"},
                )
        finally:
            with suppress(Exception):
                writer.close()
                await writer.wait_closed()

    @staticmethod
    def _contains_error(health: dict[str, Any]) -> bool:
        """True if the payload or a component such as ``controller`` is in error."""
        if health.get("status") == "error":
            return True
        return any(
            isinstance(value, dict) and value.get("status") == "error"
            for value in health.values()
        )

    @staticmethod
    def _parse_path(request_line: bytes) -> str:
        parts = request_line.decode("utf-8", errors="replace").strip().split()
        if len(parts) >= 2:
            return parts[1].split("?", 1)[0]
        return ""

    @staticmethod
    async def _respond(
        writer: asyncio.StreamWriter, status: HTTPStatus, body: dict[str, Any]
    ) -> None:
        payload = json.dumps(body).encode()
        header = (
            f"HTTP/1.1 {status.value} {status.phrase}\r\n"
            f"Content-Type: application/json\r\n"
            f"Content-Length: {len(payload)}\r\n"
            f"Connection: close\r\n"
            f"\r\n"
        )
        writer.write(header.encode() + payload)
        await writer.drain()
