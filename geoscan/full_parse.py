#!/usr/bin/env python3
"""Whole-document loading for files small enough to parse in memory."""
import json
import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)

_CLOSERS = {'{': '}', '[': ']'}

# deeper truncation means a record was cut mid-way; the chunked scanner handles that
MAX_REPAIR_DEPTH = 2


def repair_truncated_json(text: str) -> Optional[str]:
    """Close a document that was cut off between complete values, or return None.

    Only the outer collection (at most two open containers, e.g. the root object
    and its ``features`` array) is closed, so a record cut in half is never
    passed off as complete.
    """
    stack = []
    in_string = False
    escape = False
    for ch in text:
        if in_string:
            if escape:
                escape = False
            elif ch == '\\':
                escape = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in '}]' and stack and stack[-1] == ch:
            stack.pop()

    fixed = text.rstrip()
    if in_string or not stack or len(stack) > MAX_REPAIR_DEPTH:
        return None
    if not fixed or fixed[-1] not in '{}[]",':
        return None
    return fixed.rstrip(',').rstrip() + ''.join(reversed(stack))


def load_document(path) -> Any:
    """Read and parse `path`; on a decode error retry once with a repaired document.

    Raises OSError if the file cannot be read and ValueError if it cannot be
    parsed even after repair.
    """
    start = time.time()
    with open(path, 'r', encoding='utf-8-sig') as f:
        text = f.read()
    logger.info(f"Read {len(text)} characters in {time.time() - start:.2f}s")

    start = time.time()
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse failed ({e}); attempting repair")
        repaired = repair_truncated_json(text)
        if repaired is None:
            raise
        try:
            doc = json.loads(repaired)
        except json.JSONDecodeError:
            raise e from None
        logger.info("Parsed JSON after repair")
    logger.info(f"Parsed JSON in {time.time() - start:.2f}s")
    return doc
