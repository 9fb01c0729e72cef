"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets TESTING=true so no local .env file is loaded, and provides
environment defaults that keep password hashing cheap and the route-level
limiters out of the way of functional tests.
"""

import os
from typing import Iterator

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret-key-with-enough-entropy-123")
os.environ.setdefault("AUTH_PASSWORD_HASH_ITERATIONS", "1000")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_LOGIN_MAX_REQUESTS", "1000")
os.environ.setdefault("RATE_LIMIT_REGISTRATION_MAX_REQUESTS", "1000")

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.app_factory import create_app
from app.core.config import Settings


@pytest.fixture
def app() -> Iterator[FastAPI]:
    """Fresh application with its own limiters, users and token blacklist."""
    application = create_app(Settings())
    yield application
    application.state.rate_limiters.destroy_all()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def registered_user(client: TestClient) -> dict:
    """Register a user and return the credentials plus the issued token."""
    credentials = {
        "email": "jane.doe@example.com",
        "password": "Password123",
        "name": "Jane Doe",
    }
    resp = client.post("/api/auth/register", json=credentials)
    assert resp.status_code == 201
    return {**credentials, "token": resp.json()["token"]}
