#!/usr/bin/env python3
"""End-to-end integration tests for geojson-lite project."""

import pytest
import json
import threading
from unittest.mock import patch

from geoscan.config import ExtractionConfig, KB
from fixtures.generate_test_data import (
    generate_esri_json,
    generate_feature_collection,
    generate_truncated_collection,
    make_feature,
    write_collection,
)


class TestCliIntegration:
    """Integration tests for the preview CLI."""

    def test_preview_to_stdout(self, collection_file, capsys, clean_environment):
        """The CLI prints a capped FeatureCollection and exits 0."""
        from preview_cli.large_preview import cli

        code = cli([str(collection_file), "--max-features", "5"])

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert result["type"] == "FeatureCollection"
        assert len(result["features"]) == 5
        assert result["simplified"] is True

    def test_truncated_file(self, truncated_file, capsys, clean_environment):
        """A truncated file still yields its complete features."""
        from preview_cli.large_preview import cli

        code = cli([str(truncated_file), "--chunk-size", "4"])

        result = json.loads(capsys.readouterr().out)
        assert code == 0
        assert len(result["features"]) == 10

    def test_missing_file_exits_nonzero(self, tmp_path, capsys):
        """I/O failures are reported in the JSON and through the exit code."""
        from preview_cli.large_preview import cli

        code = cli([str(tmp_path / "missing.geojson")])

        result = json.loads(capsys.readouterr().out)
        assert code == 1
        assert result["features"] == []
        assert "error" in result

    def test_in_memory_normalizes_esri(self, tmp_path, capsys):
        """--in-memory converts alternate schemas."""
        from preview_cli.large_preview import cli
        path = generate_esri_json(3, tmp_path / "esri.json")

        cli([str(path), "--in-memory", "--indent", "2"])

        out = capsys.readouterr().out
        result = json.loads(out)
        assert "\n  " in out
        assert [f["geometry"]["type"] for f in result["features"]] == ["Polygon"] * 3

    def test_cli_overrides_reach_the_engine(self, collection_file, clean_environment):
        """Chunk size and timeout flags end up in the extraction config."""
        from preview_cli.large_preview import cli

        with patch("preview_cli.large_preview.process") as mock_process:
            mock_process.return_value = {"features": [], "totalFeatures": 0, "simplified": False}
            cli([str(collection_file), "--chunk-size", "5000", "--timeout", "3"])

        path, max_features, config = mock_process.call_args[0]
        assert path == collection_file
        assert config.chunk_size == 5000 * KB
        assert config.timeout_seconds == 3.0

    def test_recommend_chunk_bounds(self, tmp_path, collection_file):
        """Recommended chunk sizes stay within 1000-10000 KB."""
        from preview_cli.large_preview import recommend_chunk, feature_stats

        assert recommend_chunk(collection_file) == 1000
        assert feature_stats(collection_file)["count"] == 25

        wide = write_collection(tmp_path / "wide.geojson", [make_feature(0, padding=1536 * KB)])
        assert recommend_chunk(wide) == 10000

    def test_recommend_chunk_without_features(self, noise_file):
        """Files without recognizable features get the default chunk size."""
        from preview_cli.large_preview import recommend_chunk

        assert recommend_chunk(noise_file) == ExtractionConfig().chunk_size // KB


class TestServiceIntegration:
    """Integration tests for the FastAPI preview service."""

    def test_health_endpoint(self, fastapi_client):
        """Test the health check endpoint."""
        response = fastapi_client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_metrics_endpoint(self, fastapi_client):
        """Test the Prometheus metrics endpoint."""
        response = fastapi_client.get("/metrics")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "geoscan_requests_total" in response.text
        assert "geoscan_extract_seconds" in response.text

    def test_list_datasets(self, fastapi_client, data_dir):
        """Every GeoJSON file in the data directory is listed."""
        generate_feature_collection(3, data_dir / "counties.geojson")
        generate_feature_collection(3, data_dir / "roads.json")
        (data_dir / "notes.txt").write_text("ignored")

        response = fastapi_client.get("/api/datasets")

        assert response.status_code == 200
        assert [d["id"] for d in response.json()] == ["counties", "roads"]
        assert response.json()[0]["fileSize"] == "0MB"

    def test_get_dataset(self, fastapi_client, data_dir):
        """A dataset is previewed with the requested cap."""
        generate_feature_collection(30, data_dir / "counties.geojson")

        response = fastapi_client.get("/api/data/counties", params={"maxFeatures": 10})

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == "counties"
        assert len(body["geoData"]["features"]) == 10
        assert body["simplified"] is True
        assert body["totalFeatures"] == 30
        assert body["emergency"] is False
        assert body["processingTime"].endswith("seconds")

    def test_get_dataset_default_cap(self, fastapi_client, data_dir):
        """Without maxFeatures the whole small dataset comes back."""
        generate_feature_collection(30, data_dir / "counties.geojson")

        body = fastapi_client.get("/api/data/counties").json()

        assert len(body["geoData"]["features"]) == 30
        assert body["simplified"] is False

    def test_unknown_dataset(self, fastapi_client):
        """Unknown datasets are a 404."""
        response = fastapi_client.get("/api/data/nowhere")
        assert response.status_code == 404
        assert response.json()["detail"] == "Dataset not found"

    def test_invalid_max_features(self, fastapi_client, data_dir):
        """maxFeatures must be positive."""
        generate_feature_collection(3, data_dir / "counties.geojson")
        response = fastapi_client.get("/api/data/counties", params={"maxFeatures": 0})
        assert response.status_code == 422

    def test_upload_preview(self, fastapi_client):
        """Test the file upload preview endpoint."""
        content = json.dumps({"type": "FeatureCollection",
                              "features": [make_feature(i) for i in range(20)]}).encode()

        response = fastapi_client.post(
            "/preview/file",
            params={"maxFeatures": 5},
            files={"file": ("upload.geojson", content, "application/geo+json")},
        )

        assert response.status_code == 200
        result = response.json()
        assert result["filename"] == "upload.geojson"
        assert result["bytes"] == len(content)
        assert len(result["geoData"]["features"]) == 5
        assert result["simplified"] is True

    def test_upload_truncated(self, fastapi_client, tmp_path):
        """Truncated uploads still return their complete features."""
        content = generate_truncated_collection(8, tmp_path / "cut.geojson").read_bytes()

        response = fastapi_client.post(
            "/preview/file",
            files={"file": ("cut.geojson", content, "application/geo+json")},
        )

        assert response.status_code == 200
        assert len(response.json()["geoData"]["features"]) == 8

    def test_upload_garbage_is_not_a_server_error(self, fastapi_client):
        """Unparseable uploads come back as an empty preview, not a 500."""
        response = fastapi_client.post(
            "/preview/file",
            files={"file": ("junk.geojson", b'{"invalid": json', "application/geo+json")},
        )

        assert response.status_code == 200
        assert response.json()["geoData"]["features"] == []

    def test_concurrent_uploads(self, fastapi_client):
        """Concurrent requests each get their own scan state."""
        results = []
        errors = []

        def upload(file_id):
            content = json.dumps({"type": "FeatureCollection",
                                  "features": [make_feature(i, owner=file_id) for i in range(10 + file_id)]})
            response = fastapi_client.post(
                "/preview/file",
                files={"file": (f"file_{file_id}.geojson", content.encode(), "application/geo+json")},
            )
            if response.status_code == 200:
                results.append((file_id, response.json()))
            else:
                errors.append(response.status_code)

        threads = [threading.Thread(target=upload, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 5
        for file_id, result in results:
            features = result["geoData"]["features"]
            assert len(features) == 10 + file_id
            assert {f["properties"]["owner"] for f in features} == {file_id}

    def test_degraded_previews_are_counted(self, fastapi_client, data_dir, monkeypatch):
        """Sampled previews increment the degraded counter."""
        generate_feature_collection(30, data_dir / "counties.geojson")
        monkeypatch.setenv("GEOSCAN_FULL_PARSE_MAX_BYTES", "0")

        with patch("geoscan.extractor._stream_scan", side_effect=RuntimeError("boom")):
            body = fastapi_client.get("/api/data/counties").json()

        assert body["geoData"]["sample"] is True
        metrics = fastapi_client.get("/metrics").text
        assert 'geoscan_degraded_total{kind="sample"}' in metrics


class TestPerformance:
    """Performance and benchmark tests."""

    @pytest.mark.benchmark(group="e2e_performance")
    def test_chunked_scan_speed(self, tmp_path, benchmark):
        """Benchmark a streamed preview of a few thousand features."""
        from geoscan.extractor import extract_features
        path = generate_feature_collection(5000, tmp_path / "bench.geojson", padding=100)
        config = ExtractionConfig(full_parse_max_bytes=0, chunk_size=256 * KB)

        result = benchmark(extract_features, path, 10000, config=config)

        assert len(result["features"]) == 5000

    @pytest.mark.benchmark(group="e2e_performance")
    def test_request_latency(self, fastapi_client, data_dir, benchmark):
        """Benchmark a dataset request."""
        generate_feature_collection(500, data_dir / "bench.geojson")

        response = benchmark(fastapi_client.get, "/api/data/bench", params={"maxFeatures": 100})

        assert response.status_code == 200
