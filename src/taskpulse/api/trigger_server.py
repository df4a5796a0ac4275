# src/taskpulse/api/trigger_server.py

"""
HTTP trigger for the dispatcher.

An external cron (or any scheduler) calls POST /api/cron/run with
`Authorization: Bearer <secret>`; each call runs exactly one dispatch cycle
and answers with the cycle report. Overlapping calls are allowed.
"""

from __future__ import annotations

import hmac
import logging
from typing import Protocol

from aiohttp import web

from ..tasks.task_models import CycleReport
from ..tasks.task_scheduler import DispatchError

logger = logging.getLogger(__name__)


class CycleRunner(Protocol):
    async def run_cycle(self, max_batch: int | None = None) -> CycleReport: ...


class TriggerServer:
    def __init__(
        self,
        dispatcher: CycleRunner,
        *,
        secret: str | None,
        host: str = "127.0.0.1",
        port: int = 8085,
    ) -> None:
        self._dispatcher = dispatcher
        self._secret = (secret or "").strip()
        self._host = host
        self._port = int(port)
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/api/health", self._health)
        app.router.add_post("/api/cron/run", self._run)
        return app

    async def start(self) -> None:
        if not self._secret:
            logger.warning("Trigger secret is not set; /api/cron/run will answer 503.")
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info("Trigger server started at http://%s:%s", self._host, self._port)

    async def stop(self) -> None:
        if self._site is not None:
            await self._site.stop()
            self._site = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

    async def _health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    def _check_auth(self, request: web.Request) -> web.Response | None:
        if not self._secret:
            return web.json_response({"success": False, "error": "Trigger secret not configured"}, status=503)

        auth_header = str(request.headers.get("Authorization", ""))
        if not auth_header.startswith("Bearer "):
            return web.json_response({"success": False, "error": "Missing bearer token"}, status=401)

        provided = auth_header.removeprefix("Bearer ").strip()
        if not hmac.compare_digest(provided.encode("utf-8"), self._secret.encode("utf-8")):
            return web.json_response({"success": False, "error": "Invalid bearer token"}, status=401)
        return None

    async def _run(self, request: web.Request) -> web.Response:
        auth_error = self._check_auth(request)
        if auth_error is not None:
            logger.info("Rejected cron trigger from %s (status=%s)", request.remote, auth_error.status)
            return auth_error

        try:
            report = await self._dispatcher.run_cycle()
        except DispatchError as e:
            logger.error("Cron trigger: cycle aborted: %s", e)
            return web.json_response({"success": False, "error": str(e)}, status=500)

        body = {"success": True, **report.as_dict()}
        return web.json_response(body)
