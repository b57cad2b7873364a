#!/usr/bin/env python3
"""Decide what part of a scanned window is carried into the next one.

The window always starts at ``state.position``. Every rule either consumes
bytes from its front or keeps it whole, so ``position`` never moves back,
and the reader's ``read_offset`` grows by a full chunk per window, which
bounds the number of loop iterations by the file size divided by the chunk
size. An object that is still open is carried until it spans more than
``stall_factor`` chunks; only then are bytes given up, and the lexer keeps
its state so quote parity survives the cut.
"""
import logging

from geoscan.boundary_scanner import ScanState, WindowScan, find_feature_start
from geoscan.config import ExtractionConfig

logger = logging.getLogger(__name__)

CONSUMED = 'consumed'
CARRY = 'carry'
RESYNC = 'resync'
DISCARD = 'discard'
FORCED = 'forced'


def _consume(state: ScanState, count: int) -> None:
    """Move the front `count` bytes of the remainder behind ``position``."""
    state.position += count
    state.remainder = state.remainder[count:]
    if count > state.scanned:
        # the lexer never saw these bytes, so its state no longer applies
        state.reset_lexer()
        return
    state.scanned -= count
    if state.object_start >= count:
        state.object_start -= count
    else:
        state.object_start = -1


def _drop(state: ScanState, count: int) -> None:
    _consume(state, count)
    state.dropped += count


def advance(state: ScanState, window: bytes, bytes_read: int, scan: WindowScan,
            config: ExtractionConfig, chunk_size: int) -> str:
    """Apply the carry-over policy after `window` was scanned; return the rule used."""
    state.remainder = window
    state.scanned = scan.scanned_to

    if scan.last_complete > 0:
        rule = CONSUMED
        _consume(state, scan.last_complete)
    elif state.clean:
        rule = DISCARD
        _consume(state, len(window))
    else:
        start = max(state.object_start, 0)
        if len(window) - start <= chunk_size * config.stall_factor:
            rule = CARRY
            _consume(state, start)
        else:
            marker = find_feature_start(window, start + 1)
            if marker > 0:
                rule = RESYNC
                logger.warning(f"No complete object in {len(window) - start} bytes; "
                               f"skipping {marker} bytes to next feature marker at {state.position + marker}")
                _drop(state, marker)
                state.reset_lexer()
            else:
                rule = FORCED
                step = min(len(window), max(config.min_advance, bytes_read // 2, start + 1))
                logger.warning(f"No complete object in {len(window) - start} bytes; "
                               f"abandoning it and forcing an advance of {step} bytes at {state.position}")
                _drop(state, step)

    cap = config.remainder_cap(chunk_size)
    if len(state.remainder) > cap:
        keep = chunk_size * config.remainder_keep_factor
        dropped = len(state.remainder) - keep
        logger.warning(f"Remainder reached {len(state.remainder)} bytes; trimming {dropped} oldest bytes")
        _drop(state, dropped)

    return rule
