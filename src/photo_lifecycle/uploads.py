"""Upload collaborator: puts received bytes on disk and builds the pending photo."""

import contextlib
import os
import uuid
from pathlib import PurePath

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from photo_lifecycle.errors import DuplicatePath, ValidationError
from photo_lifecycle.models import Album, FieldSource, Photo
from photo_lifecycle.storage import StorageLayout


def store_upload(
    session: Session,
    album: Album,
    filename: str,
    data: bytes,
    layout: StorageLayout,
    *,
    title: str | None = None,
) -> Photo:
    """
    Write an uploaded file under the album's directory and return a pending photo.

    Without an explicit ``title`` the original filename becomes a placeholder title that
    the file's DocumentName may still replace during creation.

    Raises:
        ValidationError: The filename is empty once reduced to its base name.
        DuplicatePath: Another photo already owns ``<album.path>/<filename>``; nothing is
            written in that case.

    """
    name = PurePath(filename).name
    if not name:
        msg = f"Invalid upload filename: {filename!r}"
        raise ValidationError(msg)

    relative_path = f"{album.path}/{name}"
    with session.no_autoflush:
        if session.scalars(select(Photo.id).where(Photo.path == relative_path)).first():
            raise DuplicatePath(relative_path)

    target = layout.photos_root / relative_path
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(f".{target.stem}.{uuid.uuid4().hex[:8]}.tmp{target.suffix}")
    try:
        temp_path.write_bytes(data)
        os.replace(temp_path, target)
    finally:
        with contextlib.suppress(FileNotFoundError):
            temp_path.unlink()
    logger.info("upload_stored", file=str(target), size_kb=len(data) // 1024)

    if title is not None:
        return Photo(path=relative_path, title=title, album=album)
    return Photo(path=relative_path, title=name, title_source=FieldSource.UNSET, album=album)
