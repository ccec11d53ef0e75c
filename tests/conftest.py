"""
Shared pytest fixtures and configuration for all tests.
"""

import os

import pytest

from boardstore.board import BoardStore
from boardstore.config import Settings
from boardstore.models import BoardFile, Conversation
from boardstore.services.memory import InMemoryBackend


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests of a single component")
    config.addinivalue_line(
        "markers", "integration: multi-participant scenarios against the in-memory backend"
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment the tests run in."""
    return Settings(
        _env_file=None,
        channels_page_size=100,
        contents_page_size=1000,
        max_image_size=1024 * 1024,
    )


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def conversation(backend: InMemoryBackend) -> Conversation:
    """A conversation between alice and bob; mallory is not a member."""
    return backend.create_conversation("alice", ["bob"], display_name="Design review")


@pytest.fixture
def alice(backend: InMemoryBackend, test_settings: Settings) -> BoardStore:
    return BoardStore(backend.connect("alice"), test_settings)


@pytest.fixture
def bob(backend: InMemoryBackend, test_settings: Settings) -> BoardStore:
    return BoardStore(backend.connect("bob"), test_settings)


@pytest.fixture
def mallory(backend: InMemoryBackend, test_settings: Settings) -> BoardStore:
    return BoardStore(backend.connect("mallory"), test_settings)


@pytest.fixture
def png_file() -> BoardFile:
    return BoardFile(
        name="sketch.png",
        data=b"\x89PNG\r\n\x1a\n" + os.urandom(512),
        mime_type="image/png",
    )
