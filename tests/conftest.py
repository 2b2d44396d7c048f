"""Shared fixtures for CarBot lead scoring tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

# Keep tests independent of any local .env database or cache
os.environ["DATABASE_URL"] = ""
os.environ["REDIS_URL"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")

from config.settings import get_settings
from lead_scoring.score_sink import InMemoryScoreSink
from lead_scoring.scoring_model import LeadScorer

NOW = datetime(2024, 5, 14, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sink():
    return InMemoryScoreSink()


@pytest.fixture
def scorer(sink):
    return LeadScorer(sink=sink, clock=lambda: NOW)


@pytest.fixture
def hot_lead():
    """Distressed request, created ten minutes ago, full contact data."""
    return {
        "id": "lead-hot",
        "kunde_id": "autohaus-mueller",
        "anliegen": "Sofort Hilfe! Bremsen kaputt, TÜV heute nötig",
        "telefon": "+49 1711 2345678",
        "name": "Max Mustermann",
        "created_at": (NOW - timedelta(minutes=10)).isoformat(),
    }


@pytest.fixture
def hot_chat():
    """Twelve long, polite user questions, each answered within a minute."""
    user_text = (
        "Bitte helfen Sie mir: die Bremse quietscht laut, Baujahr 2015, "
        "120000 km. Wann haben Sie einen Termin frei und was kostet das?"
    )
    messages = []
    start = NOW - timedelta(minutes=30)
    for i in range(12):
        messages.append({
            "role": "assistant",
            "content": "Wie kann ich helfen?",
            "timestamp": (start + timedelta(minutes=2 * i)).isoformat(),
        })
        messages.append({
            "role": "user",
            "content": user_text,
            "timestamp": (start + timedelta(minutes=2 * i + 1)).isoformat(),
        })
    return messages


@pytest.fixture
def cold_lead():
    return {
        "id": "lead-cold",
        "kunde_id": "autohaus-mueller",
        "anliegen": "Frage",
        "created_at": (NOW - timedelta(days=5)).isoformat(),
    }


@pytest.fixture
def client(monkeypatch):
    """FastAPI test client without a database."""
    monkeypatch.setenv("DATABASE_URL", "")
    monkeypatch.setenv("API_BATCH_PAUSE_SECONDS", "0")
    get_settings.cache_clear()
    from api.main import create_app
    with TestClient(create_app()) as c:
        yield c
    get_settings.cache_clear()


@pytest.fixture
def db_client(monkeypatch, tmp_path):
    """FastAPI test client backed by a throwaway SQLite database."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'carbot.db'}")
    monkeypatch.setenv("API_BATCH_PAUSE_SECONDS", "0")
    get_settings.cache_clear()
    from api.main import create_app
    with TestClient(create_app()) as c:
        yield c
    get_settings.cache_clear()
