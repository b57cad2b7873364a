#!/usr/bin/env python3
"""Tunables for the extraction engine, overridable from the environment."""
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

KB = 1024
MB = 1024 * 1024

DEFAULT_MAX_FEATURES = 10000

ENV_PREFIX = "GEOSCAN_"


@dataclass(frozen=True)
class ExtractionConfig:
    """Byte and time budgets for one extraction call."""

    chunk_size: int = 2 * MB
    segment_chunk_size: int = 5 * MB
    sample_size: int = 2 * MB
    header_size: int = 1 * MB
    full_parse_max_bytes: int = 64 * MB
    segmented_min_bytes: int = 512 * MB
    timeout_seconds: float = 60.0
    min_advance: int = 1 * KB
    stall_factor: int = 3
    remainder_cap_factor: int = 5
    remainder_keep_factor: int = 2
    progress_step: float = 0.05

    def remainder_cap(self, chunk_size: int) -> int:
        return chunk_size * self.remainder_cap_factor

    def with_overrides(self, **overrides) -> "ExtractionConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExtractionConfig":
        """Build a config from GEOSCAN_* variables, e.g. GEOSCAN_CHUNK_SIZE=4194304."""
        environ = os.environ if environ is None else environ
        overrides = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            cast = float if f.type in (float, "float") else int
            try:
                overrides[f.name] = cast(raw)
            except ValueError:
                logger.warning(f"Ignoring {ENV_PREFIX}{f.name.upper()}={raw!r}: not a number")
        return cls(**overrides)
