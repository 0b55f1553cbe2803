"""
Global test configuration with support for different test types.
"""

from datetime import UTC, datetime
import logging
import os
from pathlib import Path

import pytest

from paste_upload.cache import MemoryStore, UploadCache
from paste_upload.config.types import S3Config
from paste_upload.hashing import Hasher, HashTier
from tests.fakes import FakeEditor, FakeProgress, FakeS3Client, FakeUser

# 2024-03-15, the date used by key and URL examples
FIXED_NOW = datetime(2024, 3, 15, 12, 30, 45, tzinfo=UTC)

# Smallest valid PNG: 1x1 transparent pixel
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
    config.addinivalue_line(
        "markers", "allow_env_pollution: keep PASTE_UPLOAD_* variables for this test"
    )
    config.addinivalue_line(
        "markers", "allow_real_home_config: read the real home config file"
    )


# --- Environment Isolation (Autouse) ---
@pytest.fixture(autouse=True)
def isolate_paste_upload_env(request, monkeypatch):
    """Ensure a clean PASTE_UPLOAD_* environment for each test.

    Escape hatch: @pytest.mark.allow_env_pollution keeps the current env.
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith("PASTE_UPLOAD_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture(autouse=True)
def neutral_home_config(request, monkeypatch, tmp_path):
    """Point the home-config path to an isolated temp file by default.

    Escape hatch: @pytest.mark.allow_real_home_config uses the real path.
    """
    if request.node.get_closest_marker("allow_real_home_config"):
        return
    fake_home_dir = tmp_path / "home_config_isolated"
    fake_home_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("PASTE_UPLOAD_CONFIG_HOME", str(fake_home_dir / "paste_upload.toml"))


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Sets the log level for noisy external libraries to WARNING."""
    for name in ("botocore", "boto3", "urllib3", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


# --- Component Fixtures ---
@pytest.fixture
def hasher():
    """Deterministic in-process hasher, independent of installed tools."""
    return Hasher(algorithm=HashTier(kind="reference", name="sha256"))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def cache(store):
    return UploadCache(store, max_entries=10)


@pytest.fixture
def user():
    return FakeUser()


@pytest.fixture
def progress():
    return FakeProgress()


@pytest.fixture
def workspace(tmp_path) -> Path:
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def editor(workspace):
    return FakeEditor(workspace, folders=[workspace])


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def s3_config():
    return S3Config(region="us-east-1", bucket="bucket", prefix="${year}/")
