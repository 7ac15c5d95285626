import asyncio

from aiohttp import test_utils

from listing_jobs.models import ScrapeResult
from listing_jobs.ops_api import build_ops_app

from .fakes import FakeScraper, make_source


def query(jobs, *paths):
    async def main():
        async with test_utils.TestClient(test_utils.TestServer(build_ops_app(jobs))) as client:
            bodies = []
            for path in paths:
                resp = await client.get(path)
                assert resp.status == 200
                bodies.append(await resp.json())
            return bodies

    return asyncio.run(main())


def test_status_before_start(build_jobs):
    [body] = query(build_jobs([make_source()]), "/status")

    assert body == {
        "success": True,
        "data": {"triggers": {"scrape": False, "health": False, "cleanup": False}, "running": []},
    }


def test_metrics_and_health(clock, build_jobs):
    jobs = build_jobs([make_source()], scraper=FakeScraper({"fotocasa": ScrapeResult(duration=400)}, clock=clock))
    asyncio.run(jobs.run_scrape_cycle())
    asyncio.run(jobs.run_health_check())

    metrics, health = query(jobs, "/metrics", "/health")

    scrapes = metrics["data"]["scrapes"]
    assert scrapes == {"total": 1, "recent": 1, "success_rate": "100.00%", "average_duration_ms": 400}
    assert metrics["data"]["health"]["latest_status"] == "healthy"
    assert health["data"]["status"] == "healthy"
    assert health["data"]["external_record_count"] == 10


def test_health_without_checks(build_jobs):
    [body] = query(build_jobs([]), "/health")
    assert body == {"success": True, "data": None}
