#!/usr/bin/env python3
"""Preview gigantic GeoJSON files with bounded memory and a time budget."""

import argparse, json, pathlib, statistics, logging, sys
from typing import Dict

from geoscan.boundary_scanner import ScanState, find_feature_start, scan_window
from geoscan.chunk_reader import ChunkReader
from geoscan.config import DEFAULT_MAX_FEATURES, KB, MB, ExtractionConfig
from geoscan.extractor import extract_features, extract_in_memory

logger = logging.getLogger(__name__)

SAMPLE_HEAD_BYTES = 4 * MB
SAMPLE_FEATURES = 200


def feature_stats(path: pathlib.Path, head_bytes: int = SAMPLE_HEAD_BYTES) -> Dict[str, float]:
    """Byte sizes of the features found in the first `head_bytes` of the file."""
    with ChunkReader(path, head_bytes) as reader:
        head = reader.read_at(0)
    start = max(find_feature_start(head), 0)
    scan = scan_window(head, ScanState(), start=start, limit=SAMPLE_FEATURES)
    sizes = [end - begin for begin, end in scan.spans]
    if not sizes:
        return {'count': 0, 'max_bytes': 0, 'mean_bytes': 0, 'stdev_bytes': 0}
    return {
        'count': len(sizes),
        'max_bytes': max(sizes),
        'mean_bytes': statistics.mean(sizes),
        'stdev_bytes': statistics.pstdev(sizes),
    }


def recommend_chunk(path: pathlib.Path) -> int:
    """Return chunk size in KB (1000‑10000).

    Windows should hold several of the largest features seen; a feature longer
    than three windows is abandoned when the scanner has to force progress.
    """
    stats = feature_stats(path)
    if not stats['count']:
        return ExtractionConfig().chunk_size // KB
    largest = max(stats['max_bytes'], stats['mean_bytes'] + 3 * stats['stdev_bytes'])
    chunk = int(max(1000, min(10000, 8 * largest / KB)))
    logger.info("Largest sampled feature %.0f KB over %s features -> %s KB windows",
                stats['max_bytes'] / KB, stats['count'], chunk)
    return chunk


def process(path: pathlib.Path, max_features: int, config: ExtractionConfig, in_memory: bool = False) -> dict:
    if in_memory:
        return extract_in_memory(path, max_features)

    def report(fraction, position, size):
        logger.info("%d%% of %s scanned", fraction * 100, path.name)

    return extract_features(path, max_features, config=config, progress=report)


def cli(argv=None):
    ap = argparse.ArgumentParser(description="Print a capped FeatureCollection preview of a GeoJSON file.")
    ap.add_argument("file", type=pathlib.Path)
    ap.add_argument("--max-features", type=int, default=DEFAULT_MAX_FEATURES, help="features to return")
    ap.add_argument("--chunk-size", type=int, help="override chunk size KB")
    ap.add_argument("--timeout", type=float, help="seconds before falling back to sampling")
    ap.add_argument("--in-memory", action="store_true", help="parse the whole file and normalize its shape")
    ap.add_argument("--indent", type=int, default=None, help="indent the JSON output")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.INFO, stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.chunk_size:
        chunk = args.chunk_size
    elif args.file.is_file() and not args.in_memory:
        chunk = recommend_chunk(args.file)
    else:
        chunk = None
    config = ExtractionConfig.from_env().with_overrides(
        chunk_size=chunk * KB if chunk else None,
        timeout_seconds=args.timeout,
    )

    result = process(args.file, args.max_features, config, in_memory=args.in_memory)
    json.dump(result, sys.stdout, indent=args.indent)
    sys.stdout.write("\n")
    logger.info("Returned %s of %s features (simplified=%s)",
                len(result['features']), result['totalFeatures'], result['simplified'])
    return 1 if result.get('error') else 0


if __name__ == "__main__":
    sys.exit(cli())
