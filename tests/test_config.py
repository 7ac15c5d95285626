from datetime import timedelta
from textwrap import dedent

import pytest

from listing_jobs.config import build_schedule, build_sources, load_config
from listing_jobs.errors import CadenceError, ConfigError

JOBS_YML = dedent(
    """
    schedule:
      scrape: "*/2 * * * *"
      timezone: Europe/Madrid
    health:
      max_recent_errors: 2
      staleness_hours: 48
    collaborators:
      base_url: http://backend.test/api/scraper
    ops:
      port: 9000
    sources:
      fotocasa:
        endpoint: http://listings.test/search/{page}
        page_count: 3
        api_key_env: FOTOCASA_API_KEY
      idealista:
        endpoint: http://listings.test/idealista
        enabled: false
    """
)


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "jobs.yml"
    path.write_text(JOBS_YML)
    return path


def test_load_config(config_file, monkeypatch):
    monkeypatch.setenv("FOTOCASA_API_KEY", "fc-key")

    config = load_config(str(config_file))

    assert [s.name for s in config.sources] == ["fotocasa", "idealista"]
    assert [s.name for s in config.enabled_sources()] == ["fotocasa"]
    fotocasa = config.source("fotocasa")
    assert fotocasa.page_count == 3
    assert fotocasa.api_key == "fc-key"
    assert config.schedule.scrape_cadence == "*/2 * * * *"
    assert config.schedule.health_cadence == "*/5 * * * *"
    assert config.schedule.timezone == "Europe/Madrid"
    assert config.health.max_recent_errors == 2
    assert config.health.staleness == timedelta(hours=48)
    assert config.collaborators.base_url == "http://backend.test/api/scraper"
    assert config.ops.port == 9000


def test_env_overrides(config_file, monkeypatch):
    monkeypatch.setenv("SCRAPE_CADENCE", "45s")
    monkeypatch.setenv("SCRAPER_API_URL", "http://other.test/api")
    monkeypatch.setenv("SCRAPER_API_KEY", "token")

    config = load_config(str(config_file))

    assert config.schedule.scrape_cadence == "45s"
    assert config.collaborators.base_url == "http://other.test/api"
    assert config.collaborators.api_key == "token"


def test_missing_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    config = load_config(str(tmp_path / "absent.yml"))

    assert config.sources == ()
    assert config.schedule.scrape_cadence == "*/30 * * * * *"
    assert config.schedule.cleanup_cadence == "0 2 * * *"


def test_production_scrape_default(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    assert build_schedule().scrape_cadence == "*/10 * * * *"


def test_invalid_cadence_is_rejected(monkeypatch):
    monkeypatch.setenv("HEALTH_CADENCE", "sometimes")
    with pytest.raises(CadenceError):
        build_schedule()


def test_invalid_cadence_in_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "jobs.yml"
    path.write_text("schedule:\n  cleanup: '99 * * * *'\n")

    with pytest.raises(ConfigError):
        load_config(str(path))


def test_invalid_yaml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "jobs.yml"
    path.write_text("sources: [unclosed")

    with pytest.raises(ConfigError):
        load_config(str(path))


@pytest.mark.parametrize(
    "body",
    [
        "schedule: fast\n",
        "sources:\n  - fotocasa\n",
        "sources:\n  fotocasa: http://x.test\n",
        "health: 5\n",
        "health:\n  staleness_hours: soon\n",
        "collaborators: [http://backend.test]\n",
        "ops: 8089\n",
    ],
)
def test_malformed_section_is_a_config_error(tmp_path, monkeypatch, body):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "jobs.yml"
    path.write_text(body)

    with pytest.raises(ConfigError):
        load_config(str(path))


def test_invalid_source_is_a_config_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "jobs.yml"
    path.write_text("sources:\n  - name: fotocasa\n    endpoint: http://x.test\n    page_count: 0\n")

    with pytest.raises(ConfigError):
        load_config(str(path))


def test_sources_as_list_and_duplicates():
    sources = build_sources([{"name": "a", "endpoint": "http://a.test"}])
    assert sources[0].page_count == 1
    assert sources[0].ttl_days == 30

    with pytest.raises(ConfigError, match="Duplicate"):
        build_sources([{"name": "a", "endpoint": "http://a.test"}, {"name": "a", "endpoint": "http://b.test"}])


def test_unknown_source_lookup(config_file):
    config = load_config(str(config_file))
    with pytest.raises(KeyError):
        config.source("missing")
