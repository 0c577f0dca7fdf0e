#!/usr/bin/env python3
# ruff: noqa: PLR0913
"""
Photo Lifecycle: CLI to ingest, edit, tag and delete photos kept on disk and in a database.

Each photo is a source file under its album's directory, a database record, and three
renditions (thumb, album, large). Edits to title, description, GPS position and tags are
written back into the file's embedded metadata.

Requirements:
 - Exiftool installed and available in PATH (or EXIFTOOL_PATH set).
"""

from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal

from cyclopts import App, Parameter, validators
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from photo_lifecycle import __version__
from photo_lifecycle.config import (
    DEFAULT_DATABASE_URL,
    DEFAULT_PHOTOS_ROOT,
    DEFAULT_RENDITION_WORKERS,
    DEFAULT_RENDITIONS_ROOT,
    LogLevel,
    setup_logging,
)
from photo_lifecycle.db import create_db_engine, init_db, session_factory, session_scope
from photo_lifecycle.errors import PhotoLifecycleError
from photo_lifecycle.lifecycle import AssetLifecycle
from photo_lifecycle.metadata import MetadataCodec
from photo_lifecycle.models import Album, Photo
from photo_lifecycle.renditions import RenditionGenerator
from photo_lifecycle.storage import StorageLayout
from photo_lifecycle.tags import TagVocabulary
from photo_lifecycle.uploads import store_upload


ClearableField = Literal["description", "latitude", "longitude", "tags"]

app = App(
    name="photo-lifecycle",
    version=__version__,
)


@Parameter(name="*")
@dataclass
class Common:
    """Options shared by every command."""

    database_url: Annotated[
        str,
        Parameter(name=("--database-url", "-d"), help="SQLAlchemy database URL"),
    ] = DEFAULT_DATABASE_URL
    photos_root: Annotated[
        Path,
        Parameter(name=("--photos-root",), help="Directory holding album folders of sources"),
    ] = DEFAULT_PHOTOS_ROOT
    renditions_root: Annotated[
        Path,
        Parameter(name=("--renditions-root",), help="Directory holding album rendition folders"),
    ] = DEFAULT_RENDITIONS_ROOT
    workers: Annotated[
        int,
        Parameter(name=("--workers",), help="Threads used to resize renditions"),
    ] = DEFAULT_RENDITION_WORKERS
    file_log_level: Annotated[
        LogLevel,
        Parameter(name="--file-log-level", help="Log level for file (use 'OFF' to disable)"),
    ] = "OFF"
    console_log_level: Annotated[
        LogLevel,
        Parameter(name="--console-log-level", help="Log level for console (use 'OFF' to disable)"),
    ] = "INFO"
    log_folder: Annotated[
        Path,
        Parameter(name=("--log-folder",), help="Folder where log files are stored"),
    ] = Path("logs")


@contextmanager
def _lifecycle(common: Common | None) -> Generator[AssetLifecycle, None, None]:
    """Set up logging and the database, then yield a lifecycle bound to a fresh session."""
    common = common or Common()
    setup_logging(
        file_log_level=common.file_log_level,
        console_log_level=common.console_log_level,
        log_folder=common.log_folder,
    )
    engine = create_db_engine(common.database_url)
    init_db(engine)
    layout = StorageLayout(photos_root=common.photos_root, renditions_root=common.renditions_root)
    try:
        with session_scope(session_factory(engine)) as session:
            yield AssetLifecycle(
                session,
                layout,
                renditions=RenditionGenerator(workers=common.workers),
            )
    except PhotoLifecycleError as e:
        logger.error("command_failed", error=str(e), kind=type(e).__name__)
        raise SystemExit(1) from e
    finally:
        engine.dispose()


def _get_photo(session: Session, photo_id: int) -> Photo:
    photo = session.get(Photo, photo_id)
    if photo is None:
        logger.error("photo_not_found", photo_id=photo_id)
        raise SystemExit(1)
    return photo


def _get_or_create_album(lifecycle: AssetLifecycle, path: str, tags: str | None) -> Album:
    session = lifecycle.session
    album = session.scalars(select(Album).where(Album.path == path)).first()
    if album is None:
        album = Album(path=path, title=path)
        session.add(album)
        session.flush()
        logger.info("album_created", album=path)
    if tags is not None:
        TagVocabulary(session).sync_album(album, tags)
    return album


@app.command
def ingest(
    source: Annotated[
        Path,
        Parameter(
            name=("--input", "-i"),
            validator=validators.Path(exists=True, file_okay=True, dir_okay=False),
            help="Image file to copy into the album",
        ),
    ],
    album: Annotated[
        str,
        Parameter(name=("--album", "-a"), help="Album path segment, created if missing"),
    ],
    *,
    title: Annotated[
        str | None,
        Parameter(name=("--title", "-t"), help="Title (defaults to DocumentName or filename)"),
    ] = None,
    tags: Annotated[
        str | None,
        Parameter(name=("--tags",), help="Space-separated tags for the photo"),
    ] = None,
    album_tags: Annotated[
        str | None,
        Parameter(name=("--album-tags",), help="Space-separated tags to set on the album"),
    ] = None,
    common: Common | None = None,
) -> None:
    """
    Copy an image into an album and create its record, metadata-derived fields and renditions.

    Examples:
        photo-lifecycle ingest -i ./IMG_0001.jpg --album holidays/2024
        photo-lifecycle ingest -i ./IMG_0002.jpg -a holidays/2024 --tags "beach family"

    """
    with _lifecycle(common) as lifecycle:
        target_album = _get_or_create_album(lifecycle, album.strip("/"), album_tags)
        photo = store_upload(
            lifecycle.session,
            target_album,
            source.name,
            source.read_bytes(),
            lifecycle.layout,
            title=title,
        )
        lifecycle.on_create(photo, tag_list=tags)
        print(f"{photo.id}\t{photo.path}\t{photo.tag_list}")


@app.command
def update(
    photo_id: int,
    *,
    title: Annotated[str | None, Parameter(name=("--title", "-t"))] = None,
    description: Annotated[str | None, Parameter(name=("--description",))] = None,
    latitude: Annotated[float | None, Parameter(name=("--latitude", "--lat"))] = None,
    longitude: Annotated[float | None, Parameter(name=("--longitude", "--lon"))] = None,
    tags: Annotated[
        str | None,
        Parameter(name=("--tags",), help="Replace the tag list (space-separated)"),
    ] = None,
    clear: Annotated[
        list[ClearableField] | None,
        Parameter(name=("--clear",), help="Fields to empty (repeat this option)"),
    ] = None,
    common: Common | None = None,
) -> None:
    """Edit a photo's record and write the result into the file's embedded metadata."""
    changes: dict[str, Any] = {
        field: value
        for field, value in (
            ("title", title),
            ("description", description),
            ("latitude", latitude),
            ("longitude", longitude),
            ("tag_list", tags),
        )
        if value is not None
    }
    for field in clear or []:
        changes["tag_list" if field == "tags" else field] = "" if field == "tags" else None

    with _lifecycle(common) as lifecycle:
        photo = _get_photo(lifecycle.session, photo_id)
        changed = lifecycle.on_update(photo, changes)
        print(", ".join(sorted(changed)) or "no changes")


@app.command
def delete(photo_id: int, *, common: Common | None = None) -> None:
    """Delete a photo's record, source file and renditions."""
    with _lifecycle(common) as lifecycle:
        lifecycle.on_delete(_get_photo(lifecycle.session, photo_id))


@app.command
def tag(photo_id: int, texts: list[str], *, common: Common | None = None) -> None:
    """Attach one or more tags to a photo."""
    with _lifecycle(common) as lifecycle:
        photo = _get_photo(lifecycle.session, photo_id)
        for text in texts:
            lifecycle.tag(photo, text)
        print(photo.tag_list)


@app.command
def untag(photo_id: int, texts: list[str], *, common: Common | None = None) -> None:
    """Detach one or more tags from a photo."""
    with _lifecycle(common) as lifecycle:
        photo = _get_photo(lifecycle.session, photo_id)
        for text in texts:
            lifecycle.untag(photo, text)
        print(photo.tag_list)


@app.command
def regenerate(photo_id: int, *, common: Common | None = None) -> None:
    """Rebuild a photo's renditions from its source file."""
    with _lifecycle(common) as lifecycle:
        for rendition in lifecycle.regenerate(_get_photo(lifecycle.session, photo_id)):
            print(f"{rendition.label}\t{rendition.path}")


@app.command
def show(
    photo_id: int,
    *,
    exif: Annotated[
        bool,
        Parameter(name=("--exif",), help="Also list every tag ExifTool reports for the file"),
    ] = False,
    common: Common | None = None,
) -> None:
    """Print a photo's record, file locations and optionally its embedded metadata."""
    with _lifecycle(common) as lifecycle:
        photo = _get_photo(lifecycle.session, photo_id)
        layout = lifecycle.layout
        rows: list[tuple[str, Any]] = [
            ("id", photo.id),
            ("param", photo.to_param()),
            ("state", photo.state.value),
            ("album", photo.album.path),
            ("title", photo.title),
            ("description", photo.description),
            ("latitude", photo.latitude),
            ("longitude", photo.longitude),
            ("tags", photo.tag_list),
            ("source", layout.source_path(photo)),
            *layout.rendition_paths(photo).items(),
        ]
        if exif:
            rows.extend(MetadataCodec().dump(layout.source_path(photo)).items())
        for name, value in rows:
            print(name.ljust(28) + ("" if value is None else str(value)))


if __name__ == "__main__":
    app()
