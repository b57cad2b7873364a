#!/usr/bin/env python3
from fastapi import FastAPI, UploadFile, File, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import logging, tempfile, time, os
from pathlib import Path
from typing import Dict
from geoscan.config import ExtractionConfig
from geoscan.extractor import extract_features

app = FastAPI(title="GeoJSON-Lite preview")
logger = logging.getLogger(__name__)

request_counter = Counter("geoscan_requests_total", "Preview requests", ["endpoint"])
extract_duration = Histogram("geoscan_extract_seconds", "Time spent extracting previews")
degraded_counter = Counter("geoscan_degraded_total", "Previews served from a fallback path", ["kind"])

DATASET_SUFFIXES = (".geojson", ".json")
DEFAULT_DATASET_FEATURES = 100000


def data_dir() -> Path:
    return Path(os.environ.get("GEOSCAN_DATA_DIR", "uploads"))


def discover_datasets(directory: Path) -> Dict[str, Path]:
    """Map dataset id (file stem) to path for every GeoJSON file in `directory`."""
    if not directory.is_dir():
        return {}
    return {
        p.stem: p
        for p in sorted(directory.iterdir())
        if p.is_file() and p.suffix.lower() in DATASET_SUFFIXES
    }


def _preview(path: Path, max_features: int) -> dict:
    start = time.time()
    with extract_duration.time():
        geo = extract_features(path, max_features, config=ExtractionConfig.from_env())
    for kind in ("emergency", "sample", "error"):
        if geo.get(kind):
            degraded_counter.labels(kind=kind).inc()
    return {
        "geoData": geo,
        "simplified": geo["simplified"],
        "totalFeatures": geo["totalFeatures"],
        "emergency": geo.get("emergency", False),
        "processingTime": f"{time.time() - start:.3f} seconds",
    }


@app.get("/health", tags=["ops"])
def health():
    return {"status": "healthy"}

@app.get("/metrics", tags=["ops"])
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.get("/api/datasets", tags=["data"])
def list_datasets():
    request_counter.labels(endpoint="datasets").inc()
    return [
        {"id": name, "name": f"{name} Dataset", "fileSize": f"{round(path.stat().st_size / (1024 * 1024))}MB"}
        for name, path in discover_datasets(data_dir()).items()
    ]

@app.get("/api/data/{dataset}", tags=["data"])
def get_dataset(dataset: str, max_features: int = Query(DEFAULT_DATASET_FEATURES, alias="maxFeatures", ge=1)):
    request_counter.labels(endpoint="data").inc()
    datasets = discover_datasets(data_dir())
    if dataset not in datasets:
        logger.info(f"Dataset {dataset} not found")
        raise HTTPException(status_code=404, detail="Dataset not found")
    path = datasets[dataset]
    logger.info(f"Loading dataset {dataset} from {path}")
    return {"id": dataset, "name": f"{dataset} Dataset", **_preview(path, max_features)}

@app.post("/preview/file", tags=["process"])
async def preview_file(file: UploadFile = File(...),
                       max_features: int = Query(1000, alias="maxFeatures", ge=1)):
    request_counter.labels(endpoint="upload").inc()
    chunk_size = 8*1024*1024  # 8 MB
    with tempfile.NamedTemporaryFile(suffix=".geojson", delete=False) as tmp:
        total = 0
        while True:
            chunk = await file.read(chunk_size)
            if not chunk:
                break
            tmp.write(chunk)
            total += len(chunk)
        tmp_path = tmp.name
    try:
        result = await run_in_threadpool(_preview, Path(tmp_path), max_features)
    finally:
        Path(tmp_path).unlink()
    return {"filename": file.filename, "bytes": total, **result}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
