#!/usr/bin/env python3
"""Find complete top-level JSON objects in a byte window.

The scanner works on raw bytes. Every structural character it cares about
(``{``, ``}``, ``"`` and ``\\``) is ASCII and never appears inside a UTF-8
multi-byte sequence, so a window may start or end in the middle of a
character without confusing the lexer, and offsets in the window map
directly to file offsets.

Only brace depth gates object boundaries; ``[`` and ``]`` are never counted,
so deeply nested coordinate arrays cost nothing.
"""
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from geoscan.normalizer import coerce_feature

logger = logging.getLogger(__name__)

_STRUCTURAL = re.compile(rb'[{}"\\]')

# Start of a canonical feature object, e.g. {"type": "Feature", ...
FEATURE_START = re.compile(rb'\{\s*"type"\s*:\s*"Feature"\s*[,}]')

_OPEN, _CLOSE, _QUOTE, _BACKSLASH = ord('{'), ord('}'), ord('"'), ord('\\')


@dataclass
class ScanState:
    """Everything one extraction call knows about its progress through a file.

    ``position`` is the file offset of the first unconsumed byte (the start of
    ``remainder``); ``read_offset`` is where the next chunk will be read. The
    lexer fields describe the scan of ``remainder[:scanned]`` so the next
    window resumes instead of rescanning. ``object_start`` of -1 with a
    positive ``depth`` means the open object lost its opening bytes to a
    forced advance and is skipped when it closes. ``dropped`` counts bytes
    given up before they could complete an object.
    """

    position: int = 0
    read_offset: int = 0
    remainder: bytes = b''
    features: List[Dict[str, Any]] = field(default_factory=list)
    depth: int = 0
    in_string: bool = False
    escape_next: bool = False
    object_start: int = -1
    scanned: int = 0
    iterations: int = 0
    rejected: int = 0
    dropped: int = 0
    eof: bool = False

    @classmethod
    def at(cls, offset: int) -> "ScanState":
        return cls(position=offset, read_offset=offset)

    @property
    def clean(self) -> bool:
        """True when the lexer sits between top-level objects."""
        return self.depth == 0 and not self.in_string and self.object_start < 0

    def reset_lexer(self) -> None:
        self.depth = 0
        self.in_string = False
        self.escape_next = False
        self.object_start = -1
        self.scanned = 0


@dataclass
class WindowScan:
    features: List[Dict[str, Any]]
    spans: List[Tuple[int, int]]
    last_complete: int
    scanned_to: int
    rejected: int = 0


def parse_candidate(candidate: bytes) -> Optional[Dict[str, Any]]:
    """Parse one balanced object and return it as a Feature, or None."""
    try:
        obj = json.loads(candidate)
    except (ValueError, RecursionError) as e:
        logger.debug(f"Skipping unparseable object ({len(candidate)} bytes): {e}")
        return None
    feature = coerce_feature(obj)
    if feature is None:
        logger.debug(f"Skipping object without geometry/properties ({len(candidate)} bytes)")
    return feature


def scan_window(window: bytes, state: ScanState, start: Optional[int] = None,
                limit: Optional[int] = None) -> WindowScan:
    """Scan `window` from `start` (default: ``state.scanned``), updating the lexer in `state`.

    Returns the accepted features, their ``(start, end)`` spans in the window,
    and ``last_complete``: the offset just past the last closed top-level
    object, whether or not that object was a valid feature. Stops early once
    `limit` features have been accepted.
    """
    if start is None:
        start = state.scanned
    depth = state.depth
    in_string = state.in_string
    object_start = state.object_start
    skip_to = start + 1 if state.escape_next else start

    features: List[Dict[str, Any]] = []
    spans: List[Tuple[int, int]] = []
    last_complete = 0
    rejected = 0
    scanned_to = len(window)

    for match in _STRUCTURAL.finditer(window, start):
        i = match.start()
        if i < skip_to:
            continue
        ch = window[i]
        if in_string:
            if ch == _BACKSLASH:
                skip_to = i + 2
            elif ch == _QUOTE:
                in_string = False
            continue
        if ch == _QUOTE:
            in_string = True
        elif ch == _OPEN:
            if depth == 0:
                object_start = i
            depth += 1
        elif ch == _CLOSE:
            if depth == 0:
                # stray closer, e.g. the "]}" ending an enclosing collection
                continue
            depth -= 1
            if depth == 0:
                end = i + 1
                if object_start < 0:
                    logger.debug(f"Skipping the tail of an abandoned object ending at {end}")
                else:
                    feature = parse_candidate(window[object_start:end])
                    if feature is not None:
                        features.append(feature)
                        spans.append((object_start, end))
                    else:
                        rejected += 1
                object_start = -1
                last_complete = end
                if limit is not None and len(features) >= limit:
                    scanned_to = end
                    break

    state.depth = depth
    state.in_string = in_string
    state.escape_next = in_string and skip_to > scanned_to
    state.object_start = object_start
    state.rejected += rejected
    return WindowScan(features=features, spans=spans, last_complete=last_complete,
                      scanned_to=scanned_to, rejected=rejected)


def find_feature_start(window: bytes, start: int = 0) -> int:
    """Offset of the next feature-start marker at or after `start`, or -1."""
    match = FEATURE_START.search(window, start)
    return match.start() if match else -1
