"""Tests for settings validation."""

import pytest
from pydantic import ValidationError

from app.config import DEV_JWT_SECRET, Settings


def test_production_requires_real_jwt_secret(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("JWT_SECRET_KEY", DEV_JWT_SECRET)

    with pytest.raises(ValidationError, match="JWT_SECRET_KEY"):
        Settings(_env_file=None)


def test_production_with_secret(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("JWT_SECRET_KEY", "a-real-secret")

    settings = Settings(_env_file=None)

    assert settings.is_production


def test_cors_origins_split(monkeypatch):
    monkeypatch.setenv("CORS_ORIGINS", "https://book.example.com, https://admin.example.com,")

    settings = Settings(_env_file=None)

    assert settings.cors_origins == ["https://book.example.com", "https://admin.example.com"]


def test_unknown_log_format_is_rejected(monkeypatch):
    monkeypatch.setenv("LOG_FORMAT", "xml")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
