#!/usr/bin/env python3
"""Pick an extraction tier by file size and run it under a feature cap and a deadline.

Tiers, smallest files first:

* full_parse      - load the whole document and normalize its shape
* chunked_scan    - stream fixed windows through the boundary scanner
* segmented_scan  - like chunked_scan with larger windows, for files big enough
                    that the collection header must be present and skipped

A failing tier hands over to the next one; the chain ends at the sampler,
which always produces a result. Running out of time jumps straight to the
sampler with ``emergency`` set.
"""
import enum
import logging
import os
import stat
import time
from typing import Any, Callable, Dict, Iterator, Optional

from geoscan import carry_over
from geoscan.boundary_scanner import ScanState, scan_window
from geoscan.chunk_reader import ChunkReader
from geoscan.config import DEFAULT_MAX_FEATURES, MB, ExtractionConfig
from geoscan.errors import ExtractionTimeout, HeaderNotFound
from geoscan.full_parse import load_document
from geoscan.header import probe_header
from geoscan.normalizer import normalize
from geoscan.result import build_collection, error_collection
from geoscan.sampler import sample_file

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, int, int], None]


class Tier(enum.Enum):
    FULL_PARSE = 'full_parse'
    CHUNKED_SCAN = 'chunked_scan'
    SEGMENTED_SCAN = 'segmented_scan'


NEXT_TIER = {
    Tier.FULL_PARSE: Tier.CHUNKED_SCAN,
    Tier.SEGMENTED_SCAN: Tier.CHUNKED_SCAN,
    Tier.CHUNKED_SCAN: None,
}


class Deadline:
    """Wall-clock budget; `seconds` of None or <= 0 never expires."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds if seconds and seconds > 0 else None

    def remaining(self) -> Optional[float]:
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self._clock())

    def expired(self) -> bool:
        return self.expires_at is not None and self._clock() >= self.expires_at

    def check(self) -> None:
        if self.expired():
            raise ExtractionTimeout(f"extraction exceeded {self.seconds}s")


def select_tier(size: int, config: ExtractionConfig) -> Tier:
    if size < config.full_parse_max_bytes:
        return Tier.FULL_PARSE
    if size < config.segmented_min_bytes:
        return Tier.CHUNKED_SCAN
    return Tier.SEGMENTED_SCAN


def scan_windows(reader: ChunkReader, state: ScanState, config: ExtractionConfig,
                 chunk_size: int, limit: int,
                 deadline: Optional[Deadline] = None) -> Iterator[ScanState]:
    """Read, scan and carry over one window at a time; yield `state` after each.

    Stops at EOF (``state.eof``) or once `limit` features were collected.
    """
    while len(state.features) < limit:
        if deadline is not None:
            deadline.check()
        chunk = reader.read_at(state.read_offset, chunk_size)
        if not chunk:
            state.eof = True
            logger.debug(f"Reached end of file at {state.read_offset}")
            break
        state.read_offset += len(chunk)
        window = state.remainder + chunk
        scan = scan_window(window, state, limit=limit - len(state.features))
        state.features.extend(scan.features)
        rule = carry_over.advance(state, window, len(chunk), scan, config, chunk_size)
        state.iterations += 1
        logger.debug(f"Window {state.iterations}: +{len(scan.features)} features ({rule}), "
                     f"position {state.position}, remainder {len(state.remainder)}")
        yield state


def _stream_scan(path, size: int, tier: Tier, max_features: int, config: ExtractionConfig,
                 deadline: Deadline, progress: Optional[ProgressCallback]) -> Dict[str, Any]:
    chunk_size = config.segment_chunk_size if tier is Tier.SEGMENTED_SCAN else config.chunk_size
    with ChunkReader(path, chunk_size) as reader:
        header = probe_header(reader, config.header_size)
        if tier is Tier.SEGMENTED_SCAN and (not header.is_collection or header.features_offset is None):
            raise HeaderNotFound(f"no FeatureCollection header in the first {config.header_size} bytes")
        start = header.features_offset or 0
        logger.info(f"Scanning from offset {start} in {chunk_size // 1024} KB windows")

        # one feature past the cap tells us whether the preview is truncated
        limit = max_features + 1
        state = ScanState.at(start)
        next_report = config.progress_step
        for state in scan_windows(reader, state, config, chunk_size, limit, deadline):
            fraction = state.read_offset / size if size else 1.0
            if fraction >= next_report:
                logger.info(f"Processing: {int(fraction * 100)}% complete "
                            f"(position: {state.position}/{size}, features: {len(state.features)})")
                if progress is not None:
                    progress(fraction, state.position, size)
                next_report = fraction + config.progress_step

    found = len(state.features)
    logger.info(f"Extracted {found} features in {state.iterations} windows "
                f"({state.rejected} objects rejected)")
    if state.dropped:
        logger.warning(f"Gave up {state.dropped} bytes that never completed an object; "
                       f"the preview may be missing features")
    return build_collection(state.features, max_features, total=found,
                            simplified=found > max_features or state.dropped > 0,
                            crs=header.crs, name=header.name)


def _full_parse(path, max_features: int, deadline: Deadline) -> Dict[str, Any]:
    doc = load_document(path)
    deadline.check()
    normalized = normalize(doc, max_features)
    return build_collection(normalized.features, max_features, total=normalized.total,
                            crs=normalized.crs, name=normalized.name)


def extract_features(path, max_features: int = DEFAULT_MAX_FEATURES,
                     config: Optional[ExtractionConfig] = None,
                     deadline: Optional[Deadline] = None,
                     progress: Optional[ProgressCallback] = None) -> Dict[str, Any]:
    """Return a capped FeatureCollection preview of `path`, choosing a strategy by file size.

    Never raises: I/O failures come back as an empty result with ``error``,
    strategy failures and timeouts as a ``sample`` result.

    ``totalFeatures`` is exact after a full parse. The streamed tiers stop
    one feature past the cap, so there it is a lower bound: a capped stream
    reports ``max_features + 1`` whatever the file holds. ``simplified`` is
    also set when a streamed scan had to give up bytes of an object that
    never closed within ``stall_factor`` windows.
    """
    config = config or ExtractionConfig.from_env()
    max_features = max(0, int(max_features))
    if deadline is None:
        deadline = Deadline(config.timeout_seconds)
    started = time.time()

    try:
        st = os.stat(path)
    except OSError as e:
        logger.error(f"Cannot stat {path}: {e}")
        return error_collection(f"Failed to read {path}: {e}")
    if not stat.S_ISREG(st.st_mode):
        logger.error(f"{path} is not a regular file")
        return error_collection(f"Failed to read {path}: not a regular file")

    size = st.st_size
    tier = select_tier(size, config)
    logger.info(f"Processing {path} ({size / MB:.1f} MB, max {max_features} features) with {tier.value}")

    while tier is not None:
        try:
            deadline.check()
            if tier is Tier.FULL_PARSE:
                result = _full_parse(path, max_features, deadline)
            else:
                result = _stream_scan(path, size, tier, max_features, config, deadline, progress)
        except ExtractionTimeout as e:
            logger.warning(f"{tier.value} abandoned: {e}; taking an emergency sample")
            return sample_file(path, max_features, config, emergency=True)
        except Exception as e:
            next_tier = NEXT_TIER[tier]
            logger.warning(f"{tier.value} failed: {e}; "
                           f"falling back to {next_tier.value if next_tier else 'sampling'}")
            tier = next_tier
            continue
        logger.info(f"Returning {len(result['features'])} of {result['totalFeatures']} features "
                    f"in {time.time() - started:.2f}s")
        return result

    return sample_file(path, max_features, config)


def extract_in_memory(path, max_features: int = DEFAULT_MAX_FEATURES) -> Dict[str, Any]:
    """Parse `path` whole and normalize it; failures come back as an ``error`` result."""
    max_features = max(0, int(max_features))
    try:
        doc = load_document(path)
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        return error_collection(f"Failed to read {path}: {e}")
    except (ValueError, RecursionError) as e:
        logger.error(f"Failed to parse {path}: {e}")
        return error_collection(f"Failed to parse {path}: {e}")
    normalized = normalize(doc, max_features)
    return build_collection(normalized.features, max_features, total=normalized.total,
                            crs=normalized.crs, name=normalized.name)
