"""Where a photo's source file and renditions live on disk and on the web."""

from pathlib import Path

from pydantic import BaseModel

from photo_lifecycle.config import (
    DEFAULT_PHOTOS_ROOT,
    DEFAULT_PHOTOS_URL,
    DEFAULT_RENDITIONS_ROOT,
    DEFAULT_RENDITIONS_URL,
    RENDITION_SIZES,
)
from photo_lifecycle.models import Album, Photo


class StorageLayout(BaseModel):
    """
    Filesystem and public URL roots.

    Source files live at ``<photos_root>/<photo.path>`` where ``photo.path`` starts with the
    album's path segment. Renditions live at
    ``<renditions_root>/<album.path>/<photo.id>_<label><extension>``.
    """

    photos_root: Path = DEFAULT_PHOTOS_ROOT
    renditions_root: Path = DEFAULT_RENDITIONS_ROOT
    photos_url: str = DEFAULT_PHOTOS_URL
    renditions_url: str = DEFAULT_RENDITIONS_URL

    def album_dir(self, album: Album) -> Path:
        return self.photos_root / album.path

    def rendition_dir(self, album: Album) -> Path:
        return self.renditions_root / album.path

    def source_path(self, photo: Photo) -> Path:
        return self.photos_root / photo.path

    def rendition_path(self, photo: Photo, label: str) -> Path:
        return self.rendition_dir(photo.album) / rendition_filename(
            photo.id,
            label,
            photo.extension,
        )

    def rendition_paths(self, photo: Photo) -> dict[str, Path]:
        return {label: self.rendition_path(photo, label) for label in RENDITION_SIZES}

    def source_url(self, photo: Photo) -> str:
        return f"{self.photos_url.rstrip('/')}/{photo.path}"

    def rendition_url(self, photo: Photo, label: str) -> str:
        filename = rendition_filename(photo.id, label, photo.extension)
        return f"{self.renditions_url.rstrip('/')}/{photo.album.path}/{filename}"


def rendition_filename(photo_id: int, label: str, extension: str) -> str:
    """
    Build the deterministic file name of a rendition.

    Examples:
        >>> rendition_filename(12, "thumb", ".jpg")
        '12_thumb.jpg'

    """
    return f"{photo_id}_{label}{extension}"
