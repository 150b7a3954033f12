"""
Error taxonomy for the listings pipeline.

Per-channel and per-record errors are raised by the collaborator clients and
absorbed by the stage that called them. Only NoChannelDataAvailable is allowed
to escape a rebuild.
"""


class ListingsError(Exception):
    """Base class for all listings pipeline errors"""
    pass


class UpstreamError(ListingsError):
    """A single channel schedule could not be obtained"""

    def __init__(self, upstream_id: str, message: str):
        self.upstream_id = upstream_id
        super().__init__(f"[{upstream_id}] {message}")


class UpstreamTimeout(UpstreamError):
    """Schedule fetch exceeded its per-fetch timeout"""
    pass


class UpstreamStatusError(UpstreamError):
    """Upstream answered with a non-success status or the transport failed"""

    def __init__(self, upstream_id: str, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(upstream_id, message)


class MalformedPayload(UpstreamError):
    """Payload does not carry the expected listings root marker"""
    pass


class ClassifierFailure(ListingsError):
    """Classifier service call failed or returned unusable content"""
    pass


class ClassifierShapeMismatch(ClassifierFailure):
    """Classifier answer cannot be aligned with the submitted batch"""

    def __init__(self, expected: int, message: str):
        self.expected = expected
        super().__init__(f"expected {expected} results: {message}")


class MetadataLookupFailure(ListingsError):
    """Catalog lookup for a show or episode failed"""
    pass


class NoChannelDataAvailable(ListingsError):
    """Rebuild obtained no usable channel data at all"""
    pass
