"""Exceptions raised inside the engine; none escape the public entry points."""


class GeoScanError(Exception):
    """Base class for extraction failures."""


class ExtractionTimeout(GeoScanError):
    """The wall-clock budget ran out before the strategy finished."""


class HeaderNotFound(GeoScanError):
    """The head of the file does not look like a FeatureCollection."""
