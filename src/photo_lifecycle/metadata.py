"""
Read and write the descriptive fields of an image's embedded metadata block.

Requirements:
 - Exiftool installed and available in PATH (or EXIFTOOL_PATH set).

Mapped fields:
 - GPS latitude/longitude (signed decimal degrees)
 - EXIF DocumentName (title) and ImageDescription (description)
 - IPTC Keywords, mirrored to XMP-dc:Subject
"""

import contextlib
import os
import shutil
import uuid
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from exiftool import ExifToolHelper
from exiftool.exceptions import ExifToolException
from loguru import logger
from pydantic import BaseModel, Field

from photo_lifecycle.config import DEFAULT_EXIFTOOL_PATH
from photo_lifecycle.errors import MetadataUnreadable, MetadataUnwritable


READ_TAGS = [
    "GPSLatitude",
    "GPSLongitude",
    "EXIF:DocumentName",
    "EXIF:ImageDescription",
    "IPTC:Keywords",
    "XMP:Subject",
]

# Signed values come from the Composite group; XMP stores them signed already.
LATITUDE_KEYS = ("Composite:GPSLatitude", "XMP:GPSLatitude")
LONGITUDE_KEYS = ("Composite:GPSLongitude", "XMP:GPSLongitude")
KEYWORD_KEYS = ("IPTC:Keywords", "XMP:Subject")

_EXIFTOOL_ERRORS = (ValueError, TypeError, OSError, ExifToolException)


class MetadataSnapshot(BaseModel):
    """The descriptive fields carried by an image's embedded metadata."""

    latitude: float | None = None
    longitude: float | None = None
    title: str | None = None
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)


def _first_present(block: dict[str, Any], keys: Iterable[str]) -> Any:  # noqa: ANN401
    for key in keys:
        value = block.get(key)
        if value not in (None, ""):
            return value
    return None


def _as_float(value: Any) -> float | None:  # noqa: ANN401
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("unparseable_gps_value", value=value)
        return None


def _as_text(value: Any) -> str | None:  # noqa: ANN401
    """
    Coerce a scalar tag value into text, treating blanks as absent.

    Examples:
        >>> _as_text("  ")
        >>> _as_text(2024)
        '2024'

    """
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_keywords(block: dict[str, Any]) -> list[str]:
    """
    Collect keywords from IPTC and XMP, dropping blanks and duplicates.

    Examples:
        >>> _as_keywords({"IPTC:Keywords": ["Beach", ""], "XMP:Subject": "Beach"})
        ['Beach']

    """
    collected: list[str] = []
    for key in KEYWORD_KEYS:
        raw_value = block.get(key)
        if raw_value is None:
            continue
        values = raw_value if isinstance(raw_value, (list, tuple, set)) else [raw_value]
        collected.extend(str(item).strip() for item in values if str(item).strip())
    return list(dict.fromkeys(collected))


def _gps_tags(axis: str, value: float | None) -> dict[str, Any]:
    """
    Split a signed coordinate into ExifTool's magnitude and reference tags.

    Examples:
        >>> _gps_tags("Latitude", -33.5)
        {'EXIF:GPSLatitude': 33.5, 'EXIF:GPSLatitudeRef': 'S'}

    """
    if value is None:
        return {f"EXIF:GPS{axis}": "", f"EXIF:GPS{axis}Ref": ""}
    positive, negative = ("N", "S") if axis == "Latitude" else ("E", "W")
    return {
        f"EXIF:GPS{axis}": abs(value),
        f"EXIF:GPS{axis}Ref": positive if value >= 0 else negative,
    }


class MetadataCodec:
    """Boundary adapter between a file's embedded metadata and :class:`MetadataSnapshot`."""

    def __init__(self, executable: str | None = DEFAULT_EXIFTOOL_PATH) -> None:
        self.executable = executable

    def _helper(self) -> ExifToolHelper:
        return ExifToolHelper(executable=self.executable)  # type: ignore[no-untyped-call]

    def read(self, path: Path) -> MetadataSnapshot:
        """Read the mapped fields; absent fields come back as None (or an empty list)."""
        if not path.is_file():
            raise MetadataUnreadable(path, FileNotFoundError(str(path)))

        try:
            with self._helper() as et:
                blocks = et.get_tags(files=[str(path)], tags=READ_TAGS)
        except _EXIFTOOL_ERRORS as e:
            logger.exception("metadata_read_failed", error=str(e), file=str(path))
            raise MetadataUnreadable(path, e) from e

        block: dict[str, Any] = blocks[0] if blocks else {}
        snapshot = MetadataSnapshot(
            latitude=_as_float(_first_present(block, LATITUDE_KEYS)),
            longitude=_as_float(_first_present(block, LONGITUDE_KEYS)),
            title=_as_text(block.get("EXIF:DocumentName")),
            description=_as_text(block.get("EXIF:ImageDescription")),
            keywords=_as_keywords(block),
        )
        logger.debug(
            "metadata_read",
            file=str(path),
            has_gps=snapshot.latitude is not None and snapshot.longitude is not None,
            has_title=snapshot.title is not None,
            keyword_count=len(snapshot.keywords),
        )
        return snapshot

    def build_tags(
        self,
        snapshot: MetadataSnapshot,
        clear: Iterable[str] = (),
    ) -> dict[str, Any]:
        """
        Translate a snapshot into ExifTool tag assignments.

        Fields that are None (or an empty keyword list) are left untouched in the file unless
        named in ``clear``, in which case the corresponding tags are deleted.
        """
        clear_set = set(clear)
        tags: dict[str, Any] = {}

        if snapshot.latitude is not None or "latitude" in clear_set:
            tags.update(_gps_tags("Latitude", snapshot.latitude))
        if snapshot.longitude is not None or "longitude" in clear_set:
            tags.update(_gps_tags("Longitude", snapshot.longitude))
        if snapshot.title is not None or "title" in clear_set:
            tags["EXIF:DocumentName"] = snapshot.title or ""
        if snapshot.description is not None or "description" in clear_set:
            tags["EXIF:ImageDescription"] = snapshot.description or ""
        if snapshot.keywords or "keywords" in clear_set:
            tags["IPTC:Keywords"] = snapshot.keywords or ""
            tags["XMP-dc:Subject"] = snapshot.keywords or ""
        return tags

    def write(
        self,
        path: Path,
        snapshot: MetadataSnapshot,
        clear: Iterable[str] = (),
    ) -> None:
        """
        Commit the snapshot into the file as a single unit.

        ExifTool edits a temporary sibling (same extension, so the format is detected),
        which is then renamed over the original. A failure leaves the original untouched.
        """
        tags = self.build_tags(snapshot, clear)
        if not tags:
            logger.debug("no_metadata_to_write", file=str(path))
            return

        temp_path = path.with_name(f".{path.stem}.{uuid.uuid4().hex[:8]}.tmp{path.suffix}")
        try:
            shutil.copy2(path, temp_path)
            with self._helper() as et:
                et.set_tags(
                    files=[str(temp_path)],
                    tags=tags,
                    params=["-overwrite_original"],
                )
            os.replace(temp_path, path)
        except _EXIFTOOL_ERRORS as e:
            logger.exception("metadata_write_failed", error=str(e), file=str(path))
            raise MetadataUnwritable(path, e) from e
        finally:
            with contextlib.suppress(FileNotFoundError):
                temp_path.unlink()

        logger.info(
            "metadata_written_successfully",
            file=str(path),
            fields=sorted(tags),
            keyword_count=len(snapshot.keywords),
        )

    def dump(self, path: Path) -> dict[str, Any]:
        """Return every tag ExifTool reports for the file, sorted by name."""
        try:
            with self._helper() as et:
                blocks = et.get_metadata(files=[str(path)])
        except _EXIFTOOL_ERRORS as e:
            raise MetadataUnreadable(path, e) from e
        block = blocks[0] if blocks else {}
        return dict(sorted(block.items()))
