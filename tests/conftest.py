#!/usr/bin/env python3
"""Shared pytest fixtures for geojson-lite test suite."""

import pytest
import json
import pathlib
import sys
from typing import Any, Dict, List

# Add parent directory to path for imports
sys.path.insert(0, str(pathlib.Path(__file__).parent.parent))
sys.path.insert(0, str(pathlib.Path(__file__).parent))

from geoscan.config import ExtractionConfig, KB

# Import test data generator
from fixtures.generate_test_data import (
    make_feature,
    generate_feature_collection,
    generate_braces_in_strings,
    generate_truncated_collection,
    generate_noise,
)


# ============================================================================
# Config Fixtures
# ============================================================================

@pytest.fixture
def small_config() -> ExtractionConfig:
    """Tiny windows so small files cross many chunk boundaries; always streams."""
    return ExtractionConfig(
        chunk_size=4 * KB,
        segment_chunk_size=8 * KB,
        sample_size=8 * KB,
        header_size=4 * KB,
        full_parse_max_bytes=0,
        segmented_min_bytes=1 << 40,
        min_advance=256,
        timeout_seconds=0,
    )


@pytest.fixture
def clean_environment(monkeypatch):
    """Ensure no GEOSCAN_* variables leak into config-sensitive tests."""
    import os
    for var in [v for v in os.environ if v.startswith("GEOSCAN_")]:
        monkeypatch.delenv(var, raising=False)
    yield


# ============================================================================
# File Fixtures
# ============================================================================

@pytest.fixture
def collection_file(tmp_path) -> pathlib.Path:
    """A well-formed collection of 25 features."""
    return generate_feature_collection(25, tmp_path / "collection.geojson")


@pytest.fixture
def braces_file(tmp_path) -> pathlib.Path:
    """Three features, the middle one with braces and escaped quotes in string values."""
    return generate_braces_in_strings(tmp_path / "braces.geojson")


@pytest.fixture
def truncated_file(tmp_path) -> pathlib.Path:
    """Ten complete features followed by half of an eleventh."""
    return generate_truncated_collection(10, tmp_path / "truncated.geojson")


@pytest.fixture
def noise_file(tmp_path) -> pathlib.Path:
    """256 KB without a single complete object."""
    return generate_noise(256 * KB, tmp_path / "noise.bin")


# ============================================================================
# Test Data Fixtures
# ============================================================================

@pytest.fixture
def sample_features() -> List[Dict[str, Any]]:
    return [make_feature(i) for i in range(5)]


@pytest.fixture
def feature_bytes() -> bytes:
    """One canonical feature serialized compactly."""
    return json.dumps(make_feature(0)).encode()


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest.fixture
def data_dir(tmp_path, monkeypatch) -> pathlib.Path:
    """A dataset directory the preview service will discover."""
    directory = tmp_path / "uploads"
    directory.mkdir()
    monkeypatch.setenv("GEOSCAN_DATA_DIR", str(directory))
    return directory


@pytest.fixture
def fastapi_client(data_dir):
    """Create a FastAPI test client for the preview service."""
    from fastapi.testclient import TestClient
    from preview_api.app.main import app

    return TestClient(app)


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")
    config.addinivalue_line("markers", "benchmark: marks benchmark tests")
