import json
from pathlib import Path

import pytest

import finthread.main as cli
from finthread.errors import ConfigError
from finthread.pipeline.job import JobOptionsBuilder
from finthread.utils.config_loader import Settings, load_journalists_config, parse_sources_json
from finthread.utils.pipeline_config import PipelineConfig

CONFIG = """
journalists:
  - name: market
    flag_keywords: ["sponsored"]
    options:
      compose_text: true
      omit_empty_meta: [tickers]
    sources:
      - name: "wsj:markets"
        url: "https://feeds.a.dj.com/rss/RSSMarketsMain.xml"
  - name: broad
    filter_keywords: ["China"]
    limit: 5
    sources:
      - name: "te:china"
        url: "https://tradingeconomics.com/china/rss"
"""


@pytest.fixture()
def config_file(tmp_path):
    path = tmp_path / "journalists.yaml"
    path.write_text(CONFIG, encoding="utf-8")
    return path


def test_load_journalists(config_file):
    market, broad = load_journalists_config(config_file, env={})

    assert market.name == "market"
    assert market.sources[0].name == "wsj:markets"
    assert market.flag_keywords == ["sponsored"]
    assert market.options == {"compose_text": True, "omit_empty_meta": ["tickers"]}
    assert broad.limit == 5
    assert broad.filter_keywords == ["China"]


def test_env_replaces_profile_sources(config_file):
    env = {"MARKET_JOURNALISTS": json.dumps([{"name": "cnbc", "url": "https://cnbc.com/rss"}])}
    market, broad = load_journalists_config(config_file, env=env)

    assert [s.name for s in market.sources] == ["cnbc"]
    assert [s.name for s in broad.sources] == ["te:china"]


def test_shipped_config_loads():
    configs = load_journalists_config(Path(__file__).parents[1] / "config" / "journalists.yaml", env={})
    assert [c.name for c in configs] == ["market", "broad"]
    for c in configs:
        assert JobOptionsBuilder.from_mapping(c.options).build().save_to_db


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"name": "x", "url": "https://x.com"}',
        '[{"name": "x"}]',
        '[{"name": "x", "url": "ftp://x.com/feed"}]',
        '[{"name": "x", "url": "/relative"}]',
    ],
)
def test_parse_sources_json_rejects(raw):
    with pytest.raises(ConfigError):
        parse_sources_json(raw, var_name="MARKET_JOURNALISTS")


@pytest.mark.parametrize(
    "body",
    [
        "- just a list",
        "journalists:\n  - sources: []\n",
        "journalists:\n  - name: x\n    sources: []\n",
        "journalists:\n  - name: x\n    limit: -1\n    sources:\n      - {name: a, url: 'https://a.com'}\n",
        "journalists: [\n",
    ],
)
def test_invalid_journalists_config(tmp_path, body):
    path = tmp_path / "bad.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_journalists_config(path, env={})


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_journalists_config(tmp_path / "absent.yaml", env={})


def test_settings_require_telegram_outside_dry_run():
    with pytest.raises(ConfigError, match="TELEGRAM_BOT_TOKEN"):
        Settings.from_env({"TELEGRAM_CHANNEL_ID": "@c"})

    settings = Settings.from_env({}, dry_run=True)
    assert settings.processing_backend == "ollama"
    assert settings.store_path.endswith("finthread.json")


def test_settings_reject_unknown_backend():
    with pytest.raises(ConfigError):
        Settings.from_env({"PROCESSING_BACKEND": "gpt"}, dry_run=True)


def test_pipeline_config_defaults():
    config = PipelineConfig.from_env({})
    assert config.news_job_interval_seconds == 60
    assert config.broad_job_interval_seconds == 90
    assert config.summary_hours() == [8, 13, 19]


def test_pipeline_config_from_env():
    config = PipelineConfig.from_env({"NEWS_JOB_INTERVAL_SECONDS": "30", "SUMMARY_JOB_CRON_HOURS": "9,18"})
    assert config.news_job_interval_seconds == 30
    assert config.summary_hours() == [9, 18]


@pytest.mark.parametrize(
    "env",
    [
        {"NEWS_JOB_INTERVAL_SECONDS": "soon"},
        {"BROAD_JOB_INTERVAL_SECONDS": "0"},
        {"SUMMARY_JOB_CRON_HOURS": "8,25"},
        {"RUN_TIMEOUT_SECONDS": "-1"},
    ],
)
def test_pipeline_config_rejects(env):
    with pytest.raises(ConfigError):
        PipelineConfig.from_env(env)


def test_settings_read_sentry_dsn():
    settings = Settings.from_env({"SENTRY_DSN": "https://key@sentry.example.com/1"}, dry_run=True)
    assert settings.sentry_dsn == "https://key@sentry.example.com/1"
    assert Settings.from_env({}, dry_run=True).sentry_dsn == ""


@pytest.fixture()
def quiet_main(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "load_dotenv", lambda **kwargs: None)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    monkeypatch.setenv("STORE_PATH", str(tmp_path / "store.json"))
    for var in ("MARKET_JOURNALISTS", "BROAD_JOURNALISTS", "PROCESSING_BACKEND", "NEWS_JOB_INTERVAL_SECONDS"):
        monkeypatch.delenv(var, raising=False)


@pytest.mark.parametrize(
    "options",
    ["{compose_txt: true}", "{save_to_db: 'yes'}", "{omit_empty_meta: [sectors]}"],
)
def test_bad_job_options_exit_with_status_1(quiet_main, tmp_path, options):
    path = tmp_path / "journalists.yaml"
    path.write_text(
        "journalists:\n"
        "  - name: market\n"
        f"    options: {options}\n"
        "    sources:\n"
        "      - {name: a, url: 'https://a.com/rss'}\n",
        encoding="utf-8",
    )

    assert cli.main(["--config", str(path), "--dry-run", "--once"]) == 1
