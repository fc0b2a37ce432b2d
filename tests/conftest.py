"""
Pytest configuration.

This file adds the project root to the Python path so that tests can import
config, domain, repositories, services and api, and provides the in-memory
Supabase client and collaborator doubles shared by the service tests.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from config import Settings  # noqa: E402
from fakes import FakeSupabaseClient, RecordingGrantor, RecordingNotifier  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_base_url="https://app.example.com",
        fulfillment_shared_secret="test-secret",
        github_access_token="ghp_test",
        github_org="acme",
    )


@pytest.fixture
def supabase() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def grantor() -> RecordingGrantor:
    return RecordingGrantor()
