"""Assemble the FeatureCollection returned to callers."""
from typing import Any, Dict, List, Optional


def build_collection(features: List[Dict[str, Any]], max_features: int, *,
                     total: Optional[int] = None,
                     simplified: bool = False,
                     crs: Optional[Dict[str, Any]] = None,
                     name: Optional[str] = None,
                     sample: bool = False,
                     emergency: bool = False,
                     error: Optional[str] = None) -> Dict[str, Any]:
    """Wrap `features` in the canonical output shape.

    The list is cut to `max_features`; ``simplified`` is forced on whenever
    ``total`` exceeds what is returned.
    """
    kept = list(features[:max(0, max_features)])
    if total is None:
        total = len(features)
    result: Dict[str, Any] = {
        'type': 'FeatureCollection',
        'features': kept,
        'totalFeatures': total,
        'simplified': bool(simplified or total > len(kept)),
    }
    if crs is not None:
        result['crs'] = crs
    if name is not None:
        result['name'] = name
    if sample:
        result['sample'] = True
    if emergency:
        result['emergency'] = True
    if error:
        result['error'] = error
    return result


def error_collection(message: str, **markers) -> Dict[str, Any]:
    """An empty, well-formed result carrying `message`."""
    return build_collection([], 0, total=0, error=message, **markers)
