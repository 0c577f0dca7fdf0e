"""SQLAlchemy records for albums, photos and the shared tag vocabulary."""

import enum
import re
from pathlib import PurePosixPath
from typing import Any

from sqlalchemy import Enum, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from photo_lifecycle.db import Base


class PhotoState(str, enum.Enum):
    PENDING = "pending"
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class FieldSource(str, enum.Enum):
    """Where a descriptive field's current value came from."""

    UNSET = "unset"  # never set, or a placeholder the file may replace
    USER = "user"
    FILE = "file"


# Fields mirrored into the embedded metadata block, each with its own provenance column.
DESCRIPTIVE_FIELDS = ("title", "description", "latitude", "longitude")


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Always stored case-folded.
    title: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, title={self.title!r})>"


class PhotoTag(Base):
    __tablename__ = "photo_tags"
    __table_args__ = (UniqueConstraint("photo_id", "tag_id", name="uq_photo_tags_photo_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    photo_id: Mapped[int] = mapped_column(
        ForeignKey("photos.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    photo: Mapped["Photo"] = relationship(back_populates="photo_tags")
    tag: Mapped[Tag] = relationship()


class AlbumTag(Base):
    __tablename__ = "album_tags"
    __table_args__ = (UniqueConstraint("album_id", "tag_id", name="uq_album_tags_album_tag"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    album_id: Mapped[int] = mapped_column(
        ForeignKey("albums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tag_id: Mapped[int] = mapped_column(
        ForeignKey("tags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    album: Mapped["Album"] = relationship(back_populates="album_tags")
    tag: Mapped[Tag] = relationship()


def _joined_titles(tags: list[Tag]) -> str:
    return " ".join(sorted(tag.title for tag in tags))


class Album(Base):
    """Container whose path segment scopes its photos and their renditions."""

    __tablename__ = "albums"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    photos: Mapped[list["Photo"]] = relationship(back_populates="album")
    album_tags: Mapped[list[AlbumTag]] = relationship(
        back_populates="album",
        cascade="all, delete-orphan",
    )
    tags: Mapped[list[Tag]] = relationship(secondary="album_tags", viewonly=True)

    @property
    def tag_list(self) -> str:
        return _joined_titles(self.tags)

    def __repr__(self) -> str:
        return f"<Album(id={self.id}, path={self.path!r})>"


class Photo(Base):
    __tablename__ = "photos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    path: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    latitude: Mapped[float | None] = mapped_column(Float)
    longitude: Mapped[float | None] = mapped_column(Float)
    album_id: Mapped[int] = mapped_column(ForeignKey("albums.id"), nullable=False, index=True)
    state: Mapped[PhotoState] = mapped_column(
        Enum(PhotoState),
        nullable=False,
        default=PhotoState.PENDING,
    )

    title_source: Mapped[FieldSource] = mapped_column(
        Enum(FieldSource), nullable=False, default=FieldSource.UNSET
    )
    description_source: Mapped[FieldSource] = mapped_column(
        Enum(FieldSource), nullable=False, default=FieldSource.UNSET
    )
    latitude_source: Mapped[FieldSource] = mapped_column(
        Enum(FieldSource), nullable=False, default=FieldSource.UNSET
    )
    longitude_source: Mapped[FieldSource] = mapped_column(
        Enum(FieldSource), nullable=False, default=FieldSource.UNSET
    )

    album: Mapped[Album] = relationship(back_populates="photos")
    photo_tags: Mapped[list[PhotoTag]] = relationship(
        back_populates="photo",
        cascade="all, delete-orphan",
    )
    tags: Mapped[list[Tag]] = relationship(secondary="photo_tags", viewonly=True)

    def __init__(self, **kwargs: Any) -> None:
        # Explicitly supplied descriptive values count as user-supplied unless told otherwise.
        for field in DESCRIPTIVE_FIELDS:
            source_key = f"{field}_source"
            if source_key not in kwargs:
                kwargs[source_key] = (
                    FieldSource.USER if kwargs.get(field) is not None else FieldSource.UNSET
                )
        kwargs.setdefault("state", PhotoState.PENDING)
        super().__init__(**kwargs)

    @property
    def tag_list(self) -> str:
        """Sorted, space-joined titles of the attached tags."""
        return _joined_titles(self.tags)

    @property
    def filename(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def extension(self) -> str:
        return PurePosixPath(self.path).suffix

    def source_of(self, field: str) -> FieldSource:
        return getattr(self, f"{field}_source")

    def set_field(self, field: str, value: Any, source: FieldSource) -> None:  # noqa: ANN401
        if field not in DESCRIPTIVE_FIELDS:
            msg = f"Unknown descriptive field: {field}"
            raise KeyError(msg)
        setattr(self, field, value)
        setattr(self, f"{field}_source", source)

    def descriptive_values(self) -> dict[str, Any]:
        return {field: getattr(self, field) for field in DESCRIPTIVE_FIELDS}

    def to_param(self) -> str:
        """
        URL slug made of the id and the title.

        Examples:
            >>> Photo(id=7, title="Sunset at the Pier!", path="a/b.jpg", album_id=1).to_param()
            '7-Sunset-at-the-Pier-'

        """
        return f"{self.id}-" + re.sub(r"[^a-z0-9]+", "-", self.title, flags=re.IGNORECASE)

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, path={self.path!r}, state={self.state.value})>"
