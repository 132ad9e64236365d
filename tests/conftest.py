import pytest

from finthread.storage import JsonFileStore


@pytest.fixture()
def store(tmp_path):
    return JsonFileStore(tmp_path / "store.json")


@pytest.fixture(autouse=True)
def no_ai_retries(monkeypatch):
    # AI calls fail fast in tests
    monkeypatch.setenv("AI_RETRIES", "0")
    monkeypatch.setenv("AI_BACKOFF", "0")
