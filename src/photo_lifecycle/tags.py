"""Shared, case-folded tag vocabulary and its photo/album associations."""

from collections.abc import Iterable

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photo_lifecycle.models import Album, AlbumTag, Photo, PhotoTag, Tag


def normalize(text: str) -> str:
    """
    Fold tag text for storage and comparison.

    Examples:
        >>> normalize("  Sunset ")
        'sunset'

    """
    return text.strip().casefold()


def split_tag_list(tag_list: str | None) -> list[str]:
    """
    Split a space-separated tag string into unique folded tokens, keeping first-seen order.

    Examples:
        >>> split_tag_list("Beach sunset  beach")
        ['beach', 'sunset']

    """
    if not tag_list:
        return []
    return list(dict.fromkeys(normalize(token) for token in tag_list.split() if token.strip()))


class TagVocabulary:
    """Tag resolution and association bookkeeping bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _find(self, title: str) -> Tag | None:
        return self.session.scalars(select(Tag).where(Tag.title == title)).first()

    def _resolve_one(self, title: str) -> Tag:
        tag = self._find(title)
        if tag is not None:
            return tag
        try:
            with self.session.begin_nested():
                tag = Tag(title=title)
                self.session.add(tag)
        except IntegrityError:
            # Another writer inserted the same title between our lookup and insert.
            logger.debug("tag_insert_conflict", tag=title)
            tag = self._find(title)
            if tag is None:
                raise
        else:
            logger.debug("tag_created", tag=title, tag_id=tag.id)
        return tag

    def resolve(self, texts: Iterable[str]) -> list[Tag]:
        """Return the tag for every distinct folded text, creating missing ones."""
        titles = list(dict.fromkeys(normalize(t) for t in texts if t and t.strip()))
        return [self._resolve_one(title) for title in titles]

    # Photo associations

    def _photo_tag_ids(self, photo_id: int) -> set[int]:
        return set(
            self.session.scalars(select(PhotoTag.tag_id).where(PhotoTag.photo_id == photo_id)),
        )

    def refresh(self, instance: Photo | Album) -> None:
        # The viewonly ``tags`` relationship has to be reloaded after association changes.
        self.session.flush()
        self.session.expire(instance)

    def attach(self, photo_id: int, tag_id: int) -> bool:
        """Link a tag to a photo; returns False when the link already existed."""
        if tag_id in self._photo_tag_ids(photo_id):
            return False
        self.session.add(PhotoTag(photo_id=photo_id, tag_id=tag_id))
        self.session.flush()
        return True

    def detach(self, photo_id: int, tag_id: int) -> bool:
        """Unlink a tag from a photo; returns False when there was nothing to remove."""
        result = self.session.execute(
            delete(PhotoTag).where(PhotoTag.photo_id == photo_id, PhotoTag.tag_id == tag_id),
        )
        return bool(result.rowcount)

    def tag_list(self, photo_id: int) -> str:
        """Sorted, space-joined titles of the tags attached to a photo."""
        titles = self.session.scalars(
            select(Tag.title)
            .join(PhotoTag, PhotoTag.tag_id == Tag.id)
            .where(PhotoTag.photo_id == photo_id)
            .order_by(Tag.title),
        )
        return " ".join(titles)

    def tag(self, photo: Photo, text: str) -> bool:
        """Attach ``text`` to the photo; returns False when it was already attached."""
        if not text.strip():
            return False
        (tag,) = self.resolve([text])
        added = self.attach(photo.id, tag.id)
        self.refresh(photo)
        return added

    def untag(self, photo: Photo, text: str) -> bool:
        """Detach ``text`` from the photo; returns False when it was not attached."""
        tag = self._find(normalize(text))
        if tag is None:
            return False
        removed = self.detach(photo.id, tag.id)
        self.refresh(photo)
        return removed

    def sync(self, photo: Photo, tag_list: str | None) -> tuple[list[str], list[str]]:
        """
        Make the photo's tags equal the tokens of ``tag_list``.

        Only the difference is applied: missing tags are attached, surplus tags detached,
        and untouched associations keep their identity.

        Returns:
            Tuple of (added, removed) folded titles, each sorted.

        """
        desired = {tag.id: tag.title for tag in self.resolve(split_tag_list(tag_list))}
        current = {
            tag_id: title
            for tag_id, title in self.session.execute(
                select(Tag.id, Tag.title)
                .join(PhotoTag, PhotoTag.tag_id == Tag.id)
                .where(PhotoTag.photo_id == photo.id),
            )
        }

        for tag_id in desired.keys() - current.keys():
            self.attach(photo.id, tag_id)
        for tag_id in current.keys() - desired.keys():
            self.detach(photo.id, tag_id)
        self.refresh(photo)

        added = sorted(desired[i] for i in desired.keys() - current.keys())
        removed = sorted(current[i] for i in current.keys() - desired.keys())
        if added or removed:
            logger.debug("photo_tags_synced", photo_id=photo.id, added=added, removed=removed)
        return added, removed

    # Album associations

    def album_tag_list(self, album: Album) -> str:
        titles = self.session.scalars(
            select(Tag.title)
            .join(AlbumTag, AlbumTag.tag_id == Tag.id)
            .where(AlbumTag.album_id == album.id)
            .order_by(Tag.title),
        )
        return " ".join(titles)

    def sync_album(self, album: Album, tag_list: str | None) -> None:
        """Set-difference sync of an album's tags, as :meth:`sync` does for photos."""
        desired = {tag.id for tag in self.resolve(split_tag_list(tag_list))}
        current = set(
            self.session.scalars(select(AlbumTag.tag_id).where(AlbumTag.album_id == album.id)),
        )
        for tag_id in desired - current:
            self.session.add(AlbumTag(album_id=album.id, tag_id=tag_id))
        if current - desired:
            self.session.execute(
                delete(AlbumTag).where(
                    AlbumTag.album_id == album.id,
                    AlbumTag.tag_id.in_(current - desired),
                ),
            )
        self.refresh(album)
