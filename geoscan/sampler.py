#!/usr/bin/env python3
"""Last-resort extraction: scan a few fixed windows spread across the file."""
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from geoscan.boundary_scanner import ScanState, find_feature_start, scan_window
from geoscan.chunk_reader import ChunkReader
from geoscan.config import ExtractionConfig
from geoscan.header import HeaderInfo, probe_header
from geoscan.result import build_collection, error_collection

logger = logging.getLogger(__name__)

SAMPLE_FRACTIONS = (0.0, 0.25, 0.5, 0.75)

# Closing brace of one record followed by the opening brace of the next,
# as between array elements or NDJSON lines.
RECORD_BOUNDARY = re.compile(rb'\}\s*,?\s*\{')


def align_window(window: bytes) -> int:
    """Offset in `window` where an isolated scan should start.

    Prefers a canonical feature marker; failing that, the start of the record
    after the first record boundary, so that feature members in any key order
    are found. Without either the window is scanned from its first byte.
    """
    start = find_feature_start(window)
    if start >= 0:
        return start
    match = RECORD_BOUNDARY.search(window)
    if match:
        return match.end() - 1
    return 0


def sample_window(window: bytes, limit: int, start: Optional[int] = None) -> Tuple[List[Dict[str, Any]], int]:
    """Scan one isolated window; return (features, offset just past the last complete object).

    The scan starts at `start` when the caller knows where records begin,
    otherwise at the offset chosen by `align_window`, so a window that opens
    in the middle of a record, or on the collection header, does not throw
    the lexer off.
    """
    if start is None:
        start = align_window(window)
    scan = scan_window(window, ScanState(), start=start, limit=limit)
    return scan.features, scan.last_complete


def _first_record(header: HeaderInfo, window: bytes) -> Optional[int]:
    if header.features_offset is not None and header.features_offset < len(window):
        return header.features_offset
    if header.root == 'array':
        return window.index(b'[') + 1
    return None


def sample_file(path, max_features: int, config: Optional[ExtractionConfig] = None,
                emergency: bool = False) -> Dict[str, Any]:
    """Collect up to `max_features` features from windows at 0/25/50/75% of the file.

    Never raises. The result is marked ``sample`` (and ``emergency`` when the
    caller ran out of time); an unreadable file yields an empty result with
    ``error`` set.
    """
    config = config or ExtractionConfig()
    features: List[Dict[str, Any]] = []
    header = HeaderInfo()
    logger.info(f"Sampling {path} ({'emergency' if emergency else 'fallback'})")
    try:
        with ChunkReader(path, config.sample_size) as reader:
            size = reader.size
            header = probe_header(reader, min(config.header_size, config.sample_size))
            covered = 0
            for fraction in SAMPLE_FRACTIONS:
                if len(features) >= max_features:
                    break
                offset = max(int(size * fraction), covered)
                if offset >= size and size > 0:
                    continue
                window = reader.read_at(offset)
                if not window:
                    continue
                start = _first_record(header, window) if offset == 0 else None
                found, last_complete = sample_window(window, max_features - len(features), start)
                logger.info(f"Sample at {offset} ({offset * 100 // max(size, 1)}% of file): "
                            f"{len(found)} features")
                features.extend(found)
                covered = offset + last_complete if last_complete else offset + len(window)
    except OSError as e:
        logger.error(f"Sampling {path} failed: {e}")
        return error_collection(f"Failed to read {path}: {e}", sample=True, emergency=emergency)
    except Exception as e:
        logger.exception(f"Unexpected error while sampling {path}")
        return build_collection(features, max_features, simplified=True, sample=True,
                                emergency=emergency, error=f"Sampling failed: {e}")

    logger.info(f"Sampled {len(features)} features")
    return build_collection(features, max_features, total=len(features), simplified=True,
                            crs=header.crs, name=header.name, sample=True, emergency=emergency)
