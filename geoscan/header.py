#!/usr/bin/env python3
"""Inspect the head of a GeoJSON file without parsing the whole document."""
import io
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import ijson

from geoscan.chunk_reader import ChunkReader

logger = logging.getLogger(__name__)

FEATURES_ARRAY = re.compile(rb'"features"\s*:\s*\[')
COLLECTION_HEADER = re.compile(rb'\{\s*"type"\s*:\s*"FeatureCollection".*?"features"\s*:\s*\[', re.S)

_BOM = b'\xef\xbb\xbf'


@dataclass
class HeaderInfo:
    root: str = 'unknown'
    features_offset: Optional[int] = None
    is_collection: bool = False
    crs: Optional[Dict[str, Any]] = None
    name: Optional[str] = None


def auto_detect_json_structure(head: bytes) -> str:
    """Return 'array', 'object', or 'unknown' from the first significant byte."""
    if head.startswith(_BOM):
        head = head[len(_BOM):]
    stripped = head.lstrip()
    if not stripped:
        return 'unknown'
    first = stripped[:1]
    if first == b'[':
        return 'array'
    if first == b'{':
        return 'object'
    return 'unknown'


def read_metadata(head: bytes) -> Dict[str, Any]:
    """Collect top-level members that precede ``features`` in a (possibly truncated) head."""
    if head.startswith(_BOM):
        head = head[len(_BOM):]
    meta: Dict[str, Any] = {}
    try:
        for key, value in ijson.kvitems(io.BytesIO(head), '', use_float=True):
            if key == 'features':
                break
            if key in ('type', 'name', 'crs'):
                meta[key] = value
    except (ijson.JSONError, ValueError) as e:
        # the head is cut mid-document; whatever was read before the cut is kept
        logger.debug(f"Header metadata stopped early: {e}")
    return meta


def probe_header(reader: ChunkReader, header_size: int) -> HeaderInfo:
    """Read up to `header_size` bytes from the start of the file and describe them."""
    head = reader.read_at(0, header_size)
    info = HeaderInfo(root=auto_detect_json_structure(head))
    if info.root != 'object':
        return info

    match = FEATURES_ARRAY.search(head)
    if match:
        info.features_offset = match.end()

    meta = read_metadata(head)
    info.is_collection = meta.get('type') == 'FeatureCollection' or bool(COLLECTION_HEADER.search(head))
    if isinstance(meta.get('crs'), dict):
        info.crs = meta['crs']
    if isinstance(meta.get('name'), str):
        info.name = meta['name']
    logger.info(f"Header: root={info.root} collection={info.is_collection} "
                f"features_offset={info.features_offset}")
    return info
