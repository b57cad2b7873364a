#!/usr/bin/env python3
"""Classify parsed documents by shape and convert them to canonical GeoJSON features.

Supported shapes:

* FEATURE_COLLECTION - ``{"type": "FeatureCollection", "features": [...]}``
* ESRI               - ArcGIS JSON with ``geometryType``/``spatialReference`` and
                       features carrying ``attributes`` and rings/paths/x,y geometries
* FEATURE_LIST       - a ``features`` list without the collection ``type``
* LAYERS             - ``{"layers": [{"name": ..., "features": [...]}, ...]}``
* FEATURE            - a single bare Feature
* GEOMETRY           - a single bare geometry
* UNKNOWN            - anything else; searched with a bounded walk
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

GEOMETRY_TYPES = frozenset([
    'Point', 'MultiPoint', 'LineString', 'MultiLineString',
    'Polygon', 'MultiPolygon', 'GeometryCollection',
])

SEARCH_MAX_DEPTH = 32
SEARCH_MAX_VISITS = 200000


class Shape(enum.Enum):
    FEATURE_COLLECTION = 'feature_collection'
    ESRI = 'esri'
    FEATURE_LIST = 'feature_list'
    LAYERS = 'layers'
    FEATURE = 'feature'
    GEOMETRY = 'geometry'
    UNKNOWN = 'unknown'


@dataclass
class NormalizedDocument:
    shape: Shape
    features: List[Dict[str, Any]] = field(default_factory=list)
    total: int = 0
    crs: Optional[Dict[str, Any]] = None
    name: Optional[str] = None


def _is_list(value) -> bool:
    return isinstance(value, list)


def classify(doc: Any) -> Shape:
    """Return the shape tag of a parsed document."""
    if not isinstance(doc, dict):
        return Shape.UNKNOWN
    doc_type = doc.get('type')
    if doc_type == 'FeatureCollection' and _is_list(doc.get('features')):
        return Shape.FEATURE_COLLECTION
    if _is_list(doc.get('features')):
        if 'geometryType' in doc or 'spatialReference' in doc:
            return Shape.ESRI
        return Shape.FEATURE_LIST
    if doc_type == 'Feature' and isinstance(doc.get('geometry'), dict):
        return Shape.FEATURE
    if doc_type in GEOMETRY_TYPES and convert_geometry(doc) is not None:
        return Shape.GEOMETRY
    if _is_list(doc.get('layers')):
        return Shape.LAYERS
    return Shape.UNKNOWN


def convert_esri_geometry(geometry: Dict[str, Any], geometry_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Translate an ArcGIS geometry (rings/paths/x,y/points) to GeoJSON, or None."""
    if 'rings' in geometry or geometry_type == 'esriGeometryPolygon':
        rings = geometry.get('rings')
        return {'type': 'Polygon', 'coordinates': rings} if _is_list(rings) else None
    if 'paths' in geometry or geometry_type == 'esriGeometryPolyline':
        paths = geometry.get('paths')
        return {'type': 'MultiLineString', 'coordinates': paths} if _is_list(paths) else None
    if 'points' in geometry or geometry_type == 'esriGeometryMultipoint':
        points = geometry.get('points')
        return {'type': 'MultiPoint', 'coordinates': points} if _is_list(points) else None
    if 'x' in geometry and 'y' in geometry:
        x, y = geometry['x'], geometry['y']
        if x is None or y is None:
            return None
        coordinates = [x, y]
        if geometry.get('z') is not None:
            coordinates.append(geometry['z'])
        return {'type': 'Point', 'coordinates': coordinates}
    return None


def convert_geometry(geometry: Any, geometry_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Return a GeoJSON geometry with a recognized type, converting ESRI forms."""
    if not isinstance(geometry, dict):
        return None
    gtype = geometry.get('type')
    if gtype is None:
        return convert_esri_geometry(geometry, geometry_type)
    if gtype not in GEOMETRY_TYPES:
        return None
    if gtype == 'GeometryCollection':
        return geometry if _is_list(geometry.get('geometries')) else None
    return geometry if _is_list(geometry.get('coordinates')) else None


def coerce_feature(obj: Any, geometry_type: Optional[str] = None,
                   require_properties: bool = True) -> Optional[Dict[str, Any]]:
    """Return `obj` as a canonical Feature, or None if it is not one.

    A canonical Feature is returned unchanged (same object). ``attributes`` is
    accepted in place of ``properties``; ``properties: null`` becomes ``{}``.
    """
    if not isinstance(obj, dict):
        return None
    geometry = convert_geometry(obj.get('geometry'), geometry_type)
    if geometry is None:
        return None
    if 'properties' in obj:
        properties = obj['properties']
    elif 'attributes' in obj:
        properties = obj['attributes']
    elif require_properties:
        return None
    else:
        properties = None
    if properties is None:
        properties = {}
    if not isinstance(properties, dict):
        return None

    if (obj.get('type') == 'Feature' and geometry is obj.get('geometry')
            and properties is obj.get('properties')):
        return obj
    feature = {'type': 'Feature', 'geometry': geometry, 'properties': properties}
    if 'id' in obj:
        feature['id'] = obj['id']
    return feature


def _esri_crs(spatial_reference: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(spatial_reference, dict):
        return None
    wkid = spatial_reference.get('latestWkid') or spatial_reference.get('wkid')
    if wkid is None:
        return None
    return {'type': 'name', 'properties': {'name': f'EPSG:{wkid}'}}


def _collect(items: List[Any], max_features: int, **coerce_kwargs) -> Tuple[List[Dict[str, Any]], int]:
    """Coerce `items` up to the cap; return the features and a total.

    The total counts accepted items when the whole list fits under the cap.
    Once a valid item turns up past the cap the list length stands in for it.
    """
    features = []
    for item in items:
        feature = coerce_feature(item, **coerce_kwargs)
        if feature is None:
            continue
        if len(features) >= max_features:
            return features, len(items)
        features.append(feature)
    return features, len(features)


def find_features(doc: Any, limit: int, max_depth: int = SEARCH_MAX_DEPTH,
                  max_visits: int = SEARCH_MAX_VISITS) -> List[Dict[str, Any]]:
    """Walk `doc` in document order collecting feature-like or geometry-like objects.

    The walk uses an explicit stack and stops descending past `max_depth`
    containers and after `max_visits` nodes, so hostile nesting cannot exhaust
    the interpreter stack or run unbounded.
    """
    found: List[Dict[str, Any]] = []
    stack = [(doc, 0)]
    visits = 0
    while stack and len(found) < limit:
        node, depth = stack.pop()
        visits += 1
        if visits > max_visits:
            logger.warning(f"Feature search stopped after {max_visits} nodes")
            break
        if isinstance(node, dict):
            if isinstance(node.get('geometry'), dict) and ('properties' in node or 'attributes' in node):
                feature = coerce_feature(node)
                if feature is not None:
                    found.append(feature)
                    continue
            geometry = convert_geometry(node) if node.get('type') in GEOMETRY_TYPES else None
            if geometry is not None:
                found.append({'type': 'Feature', 'geometry': geometry, 'properties': {}})
                continue
            children = list(node.values())
        elif isinstance(node, list):
            children = node
        else:
            continue
        if depth >= max_depth:
            continue
        for child in reversed(children):
            if isinstance(child, (dict, list)):
                stack.append((child, depth + 1))
    return found


def normalize(doc: Any, max_features: int) -> NormalizedDocument:
    """Convert a parsed document to at most `max_features` canonical features.

    `total` counts the accepted records when they all fit under the cap; past
    the cap it is the number of source records, or the number found when the
    shape gives no list to count.
    """
    shape = classify(doc)
    logger.info(f"Document shape: {shape.value}")
    result = NormalizedDocument(shape=shape)

    if shape is Shape.FEATURE_COLLECTION:
        result.features, result.total = _collect(doc['features'], max_features)
        if isinstance(doc.get('crs'), dict):
            result.crs = doc['crs']
        if isinstance(doc.get('name'), str):
            result.name = doc['name']
    elif shape is Shape.ESRI:
        result.features, result.total = _collect(doc['features'], max_features,
                                                 geometry_type=doc.get('geometryType'))
        result.crs = _esri_crs(doc.get('spatialReference'))
    elif shape is Shape.FEATURE_LIST:
        result.features, result.total = _collect(doc['features'], max_features, require_properties=False)
        if isinstance(doc.get('name'), str):
            result.name = doc['name']
    elif shape is Shape.LAYERS:
        for layer in doc['layers']:
            if not isinstance(layer, dict) or not _is_list(layer.get('features')):
                continue
            layer_name = layer.get('name') or 'unnamed'
            room = max_features - len(result.features)
            features, total = _collect(layer['features'], room, require_properties=False,
                                       geometry_type=layer.get('geometryType'))
            result.total += total
            for feature in features:
                feature = dict(feature, properties=dict(feature['properties'], _layerName=layer_name))
                result.features.append(feature)
    elif shape is Shape.FEATURE:
        feature = coerce_feature(doc, require_properties=False)
        result.features = [feature] if feature is not None and max_features > 0 else []
        result.total = 1 if feature is not None else 0
    elif shape is Shape.GEOMETRY:
        result.features = [{'type': 'Feature', 'geometry': doc, 'properties': {}}][:max_features]
        result.total = 1
    else:
        logger.info("Unrecognized structure, searching for feature-like objects")
        found = find_features(doc, max_features + 1)
        result.features = found[:max_features]
        result.total = len(found)

    logger.info(f"Normalized {len(result.features)} of {result.total} features")
    return result
