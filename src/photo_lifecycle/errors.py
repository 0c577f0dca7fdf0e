"""Exception taxonomy for the photo lifecycle."""

from pathlib import Path


class PhotoLifecycleError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(PhotoLifecycleError):
    """Bad input, rejected before any side effect."""


class DuplicatePath(PhotoLifecycleError):
    """Another photo already owns this path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Photo already exists on disc: {path}")
        self.path = path


class InvalidTransition(PhotoLifecycleError):
    """The photo's state does not allow the requested operation."""

    def __init__(self, state: str, operation: str) -> None:
        super().__init__(f"Cannot {operation} a photo in state {state!r}")
        self.state = state
        self.operation = operation


class _PathError(PhotoLifecycleError):
    reason = "failed"

    def __init__(self, path: Path | str, cause: BaseException) -> None:
        super().__init__(f"{self.reason}: {path}: {cause}")
        self.path = Path(path)
        self.cause = cause


class MetadataUnreadable(_PathError):
    reason = "Metadata unreadable"


class MetadataUnwritable(_PathError):
    reason = "Metadata unwritable"


class MetadataWriteFailed(_PathError):
    """An update was committed to the record but could not be pushed into the file."""

    reason = "Metadata write failed"


class UnsupportedImage(_PathError):
    reason = "Unsupported image"


class RenditionWriteFailed(PhotoLifecycleError):
    def __init__(self, size_label: str, cause: BaseException) -> None:
        super().__init__(f"Rendition {size_label!r} could not be written: {cause}")
        self.size_label = size_label
        self.cause = cause


class RenditionsIncomplete(PhotoLifecycleError):
    """One or more sizes failed; every size was still attempted."""

    def __init__(self, failures: list[RenditionWriteFailed]) -> None:
        labels = ", ".join(f.size_label for f in failures)
        super().__init__(f"{len(failures)} rendition(s) failed: {labels}")
        self.failures = failures


class IngestFailed(PhotoLifecycleError):
    """
    A file stage of photo creation failed after the record was persisted.

    ``stage`` and ``cause`` describe the first failure; ``failures`` holds every
    ``(stage, cause)`` pair in the order the stages ran.
    """

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        stage, cause = failures[0]
        super().__init__(f"Ingest stage {stage!r} failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.failures = failures


class CleanupIncomplete(PhotoLifecycleError):
    """Some files could not be removed while deleting a photo."""

    def __init__(self, failures: list[tuple[Path, BaseException]]) -> None:
        super().__init__(
            "Could not remove: " + ", ".join(str(path) for path, _ in failures),
        )
        self.failures = failures

    @property
    def paths(self) -> list[Path]:
        return [path for path, _ in self.failures]
