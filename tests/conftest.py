"""Shared fixtures: a throwaway SQLite database, a storage layout and image helpers."""

from collections.abc import Callable, Generator, Iterable
from pathlib import Path

import pytest
from PIL import Image
from sqlalchemy.orm import Session

from photo_lifecycle.db import create_db_engine, init_db, session_factory
from photo_lifecycle.errors import MetadataUnreadable, MetadataUnwritable
from photo_lifecycle.metadata import MetadataSnapshot
from photo_lifecycle.models import Album
from photo_lifecycle.storage import StorageLayout


class FakeCodec:
    """In-memory stand-in for MetadataCodec that follows the same write semantics."""

    def __init__(self, files: dict[Path, MetadataSnapshot] | None = None) -> None:
        self.files: dict[Path, MetadataSnapshot] = {} if files is None else files
        self.reads: list[Path] = []
        self.writes: list[tuple[Path, MetadataSnapshot, set[str]]] = []
        self.fail_read = False
        self.fail_write = False

    def read(self, path: Path) -> MetadataSnapshot:
        self.reads.append(path)
        if self.fail_read:
            raise MetadataUnreadable(path, OSError("exiftool crashed"))
        if not path.is_file():
            raise MetadataUnreadable(path, FileNotFoundError(str(path)))
        return self.files.get(path, MetadataSnapshot()).model_copy(deep=True)

    def write(self, path: Path, snapshot: MetadataSnapshot, clear: Iterable[str] = ()) -> None:
        clear_set = set(clear)
        if self.fail_write:
            raise MetadataUnwritable(path, OSError("disk full"))
        data = self.files.get(path, MetadataSnapshot()).model_dump()
        for field in ("latitude", "longitude", "title", "description"):
            value = getattr(snapshot, field)
            if value is not None or field in clear_set:
                data[field] = value
        if snapshot.keywords or "keywords" in clear_set:
            data["keywords"] = list(snapshot.keywords)
        self.files[path] = MetadataSnapshot(**data)
        self.writes.append((path, snapshot, clear_set))


@pytest.fixture
def session(tmp_path: Path) -> Generator[Session, None, None]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'photos.db'}")
    init_db(engine)
    db = session_factory(engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def layout(tmp_path: Path) -> StorageLayout:
    root = tmp_path / "photos"
    return StorageLayout(photos_root=root, renditions_root=root)


@pytest.fixture
def album(session: Session) -> Album:
    album = Album(path="holidays", title="Holidays")
    session.add(album)
    session.commit()
    return album


@pytest.fixture
def codec() -> FakeCodec:
    return FakeCodec()


def write_image(path: Path, size: tuple[int, int] = (1600, 1200), mode: str = "RGB") -> Path:
    """Write a solid-color image whose format follows the path's extension."""
    path.parent.mkdir(parents=True, exist_ok=True)
    color = (200, 120, 40, 128) if mode == "RGBA" else (200, 120, 40)
    Image.new(mode, size, color).save(path)
    return path


def image_bytes(
    tmp_path: Path,
    name: str = "upload.jpg",
    size: tuple[int, int] = (1600, 1200),
) -> bytes:
    return write_image(tmp_path / "incoming" / name, size).read_bytes()


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., bytes]:
    def _make(name: str = "upload.jpg", size: tuple[int, int] = (1600, 1200)) -> bytes:
        return image_bytes(tmp_path, name, size)

    return _make
