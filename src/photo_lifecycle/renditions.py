"""Resized derivatives of a photo's source image."""

import contextlib
import os
import uuid
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import NamedTuple

from loguru import logger
from PIL import Image, ImageOps, UnidentifiedImageError

from photo_lifecycle.config import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_RENDITION_WORKERS,
    RENDITION_SIZES,
)
from photo_lifecycle.errors import (
    RenditionsIncomplete,
    RenditionWriteFailed,
    UnsupportedImage,
)
from photo_lifecycle.storage import rendition_filename


# Formats that cannot store an alpha channel.
_OPAQUE_FORMATS = {"JPEG", "BMP"}


class Rendition(NamedTuple):
    label: str
    path: Path


def _save_format(extension: str) -> str:
    """
    Pick the Pillow encoder matching a file extension.

    Examples:
        >>> _save_format(".JPG")
        'JPEG'

    """
    fmt = Image.registered_extensions().get(extension.lower())
    if fmt is None:
        msg = f"No image encoder for extension {extension!r}"
        raise ValueError(msg)
    return fmt


def load_source(source: Path) -> Image.Image:
    """Decode the source fully, applying its EXIF orientation."""
    try:
        with Image.open(source) as img:
            img.load()
            return ImageOps.exif_transpose(img)
    except (OSError, UnidentifiedImageError, ValueError, Image.DecompressionBombError) as e:
        logger.exception("source_decode_failed", error=str(e), file=str(source))
        raise UnsupportedImage(source, e) from e


def resize(img: Image.Image, long_edge: int, fmt: str) -> Image.Image:
    """Return a copy whose long edge is at most ``long_edge``, aspect ratio preserved."""
    out = img.copy()
    if fmt in _OPAQUE_FORMATS and (
        out.mode in ("RGBA", "LA") or (out.mode == "P" and "transparency" in out.info)
    ):
        # Composite alpha onto white background
        alpha = out.convert("RGBA")
        bg = Image.new("RGBA", alpha.size, (255, 255, 255, 255))
        out = Image.alpha_composite(bg, alpha).convert("RGB")
    elif fmt in _OPAQUE_FORMATS and out.mode not in ("RGB", "L"):
        out = out.convert("RGB")
    # thumbnail() never upscales, so small sources keep their own size.
    out.thumbnail((long_edge, long_edge), Image.Resampling.LANCZOS)
    return out


def _write(img: Image.Image, target: Path, fmt: str, quality: int) -> None:
    """Encode to a temporary sibling and rename it into place."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(f".{target.stem}.{uuid.uuid4().hex[:8]}.tmp{target.suffix}")
    save_kwargs = {"quality": quality} if fmt in {"JPEG", "WEBP"} else {}
    try:
        img.save(temp_path, format=fmt, **save_kwargs)
        os.replace(temp_path, target)
    finally:
        with contextlib.suppress(FileNotFoundError):
            temp_path.unlink()


class RenditionGenerator:
    """
    Produce the fixed rendition set for a source image.

    Args:
        sizes: Label to long-edge mapping, in generation order
        workers: Number of threads resizing sizes concurrently (1 keeps it sequential)
        quality: Encoder quality for JPEG/WEBP renditions

    """

    def __init__(
        self,
        sizes: dict[str, int] | None = None,
        *,
        workers: int = DEFAULT_RENDITION_WORKERS,
        quality: int = DEFAULT_JPEG_QUALITY,
    ) -> None:
        self.sizes = dict(sizes or RENDITION_SIZES)
        self.workers = max(1, workers)
        self.quality = quality

    def _produce(self, img: Image.Image, label: str, target: Path, fmt: str) -> Rendition:
        out = resize(img, self.sizes[label], fmt)
        _write(out, target, fmt, self.quality)
        logger.debug(
            "rendition_written",
            label=label,
            file=str(target),
            width=out.width,
            height=out.height,
        )
        return Rendition(label, target)

    def generate(self, source: Path, target_dir: Path, photo_id: int) -> Iterator[Rendition]:
        """
        Yield each rendition as soon as it is on disk, in label order.

        Raises:
            UnsupportedImage: The source could not be decoded; nothing was written.
            RenditionsIncomplete: Raised after every size was attempted, if any failed.

        """
        img = load_source(source)
        extension = source.suffix
        try:
            fmt = _save_format(extension)
        except ValueError as e:
            failures = [RenditionWriteFailed(label, e) for label in self.sizes]
            raise RenditionsIncomplete(failures) from e

        targets = {
            label: target_dir / rendition_filename(photo_id, label, extension)
            for label in self.sizes
        }
        logger.info(
            "generating_renditions",
            file=str(source),
            width=img.width,
            height=img.height,
            workers=self.workers,
        )

        failures: list[RenditionWriteFailed] = []
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures: dict[str, Future[Rendition]] = {
                label: pool.submit(self._produce, img, label, target, fmt)
                for label, target in targets.items()
            }
            for label, future in futures.items():
                try:
                    rendition = future.result()
                except (OSError, ValueError) as e:
                    logger.error("rendition_write_failed", label=label, error=str(e))
                    failures.append(RenditionWriteFailed(label, e))
                    continue
                yield rendition

        if failures:
            raise RenditionsIncomplete(failures)
