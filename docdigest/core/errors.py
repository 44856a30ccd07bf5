"""Error taxonomy for the document-processing pipeline."""


class DocdigestError(Exception):
    """Base class for all pipeline errors."""


class ExtractionError(DocdigestError):
    """The source PDF is missing, unreadable, or could not be parsed."""


class PersistenceError(DocdigestError):
    """The summary store is unavailable or rejected a write."""


class ResourceExhaustion(DocdigestError):
    """Memory gate is closed. A scheduling signal, not a hard failure."""

    def __init__(self, free_bytes: int, headroom_bytes: int, floor_bytes: int):
        self.free_bytes = free_bytes
        self.headroom_bytes = headroom_bytes
        self.floor_bytes = floor_bytes
        super().__init__(
            f"Insufficient memory: {free_bytes} bytes free, "
            f"{headroom_bytes} bytes headroom (floor {floor_bytes})"
        )
