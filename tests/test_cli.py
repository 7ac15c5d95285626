import asyncio
import sys

from listing_jobs.cli import build_parser, main
from listing_jobs.config import load_config
from listing_jobs.models import CleanupResult
from listing_jobs.service import build_job_scheduler

from .fakes import FakeClock, FakeInspector, FakePurger, FakeScraper, ManualScheduler


def write_config(tmp_path, body):
    path = tmp_path / "jobs.yml"
    path.write_text(body)
    return str(path)


def test_sources_command(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    path = write_config(tmp_path, "sources:\n  fotocasa:\n    endpoint: http://x.test\n    page_count: 2\n")

    assert main(["--config", path, "sources"]) == 0

    out = capsys.readouterr().out
    assert "fotocasa" in out
    assert "pages=2" in out


def test_config_error_exit_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = write_config(tmp_path, "- not\n- a mapping\n")

    assert main(["--config", path, "sources"]) == 2


def test_parser_subcommands():
    parser = build_parser()
    assert parser.parse_args(["cleanup", "--dry-run"]).dry_run
    assert parser.parse_args(["scrape", "--source", "fotocasa"]).source == "fotocasa"


def test_build_job_scheduler_uses_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = write_config(tmp_path, "health:\n  max_recent_errors: 5\nsources:\n  a:\n    endpoint: http://a.test\n")
    config = load_config(path)
    clock = FakeClock()
    scraper = FakeScraper(clock=clock)
    purger = FakePurger(CleanupResult(deleted=1))

    jobs = build_job_scheduler(
        config, scraper, FakeInspector(), purger, clock=clock, scheduler=ManualScheduler()
    )

    asyncio.run(jobs.run_scrape_cycle())
    asyncio.run(jobs.run_cleanup())

    assert [c.source for c in scraper.calls] == ["a"]
    assert purger.calls == [True, False]
    assert jobs.metrics_summary().cleanups.total_deleted == 1
    assert [s.name for s in jobs.sources()] == ["a"]


def test_malformed_section_exit_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = write_config(tmp_path, "schedule: fast\n")

    assert main(["--config", path, "sources"]) == 2


def test_default_subcommand():
    parser = build_parser(default_cmd="run")
    assert parser.parse_args(["--config", "jobs.yml"]).cmd == "run"
    assert parser.parse_args(["cleanup", "--dry-run"]).cmd == "cleanup"


def test_entry_point_keeps_explicit_subcommand(tmp_path, monkeypatch, capsys):
    import main as entry

    monkeypatch.chdir(tmp_path)
    path = write_config(tmp_path, "sources:\n  fotocasa:\n    endpoint: http://x.test\n")
    monkeypatch.setattr(sys, "argv", ["main.py", "--config", path, "sources"])

    assert entry.run_job_system() == 0
    assert "fotocasa" in capsys.readouterr().out
