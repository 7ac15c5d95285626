"""
Operator query surface: trigger status, metrics summary and latest health.
"""

from __future__ import annotations

import logging
from typing import Optional

from aiohttp import web

from .orchestrator import JobScheduler

logger = logging.getLogger(__name__)

JOB_SCHEDULER_KEY = web.AppKey("job_scheduler", JobScheduler)


async def _status(request: web.Request) -> web.Response:
    jobs: JobScheduler = request.app[JOB_SCHEDULER_KEY]
    return web.json_response({
        "success": True,
        "data": {
            "triggers": jobs.status(),
            "running": jobs.running_ticks(),
        },
    })


async def _metrics(request: web.Request) -> web.Response:
    jobs: JobScheduler = request.app[JOB_SCHEDULER_KEY]
    return web.json_response({"success": True, "data": jobs.metrics_summary().model_dump(mode="json")})


async def _health(request: web.Request) -> web.Response:
    jobs: JobScheduler = request.app[JOB_SCHEDULER_KEY]
    snapshot = jobs.latest_health()
    return web.json_response({
        "success": True,
        "data": snapshot.model_dump(mode="json") if snapshot else None,
    })


def build_ops_app(job_scheduler: JobScheduler) -> web.Application:
    app = web.Application()
    app[JOB_SCHEDULER_KEY] = job_scheduler
    app.router.add_get("/status", _status)
    app.router.add_get("/metrics", _metrics)
    app.router.add_get("/health", _health)
    return app


async def start_ops_server(job_scheduler: JobScheduler, host: str, port: int) -> web.AppRunner:
    """Serve the ops app in the running loop; the caller cleans up the runner."""
    runner = web.AppRunner(build_ops_app(job_scheduler))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Ops API listening on http://{host}:{port}")
    return runner


async def stop_ops_server(runner: Optional[web.AppRunner]) -> None:
    if runner is not None:
        await runner.cleanup()
