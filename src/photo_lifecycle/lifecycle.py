"""
Create, update and delete flows for a single photo.

The database record is the durable source of truth. File stages (metadata read,
rendition generation, metadata write, file removal) run around it and report their
failures without ever rolling the record back.
"""

from collections.abc import Mapping
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from photo_lifecycle.errors import (
    CleanupIncomplete,
    DuplicatePath,
    IngestFailed,
    InvalidTransition,
    MetadataUnwritable,
    MetadataWriteFailed,
    PhotoLifecycleError,
    ValidationError,
)
from photo_lifecycle.metadata import MetadataCodec, MetadataSnapshot
from photo_lifecycle.models import DESCRIPTIVE_FIELDS, FieldSource, Photo, PhotoState
from photo_lifecycle.renditions import Rendition, RenditionGenerator
from photo_lifecycle.storage import StorageLayout
from photo_lifecycle.tags import TagVocabulary, split_tag_list


EDITABLE_FIELDS = (*DESCRIPTIVE_FIELDS, "tag_list")

_ALLOWED_FROM = {
    "create": {PhotoState.PENDING},
    "update": {PhotoState.CREATED, PhotoState.UPDATED},
    "delete": {PhotoState.CREATED, PhotoState.UPDATED},
    "tag": {PhotoState.CREATED, PhotoState.UPDATED},
    "regenerate": {PhotoState.CREATED, PhotoState.UPDATED},
}


def keyword_tokens(keywords: list[str]) -> list[str]:
    """
    Turn metadata keywords into tag tokens, joining multi-word keywords with underscores.

    Examples:
        >>> keyword_tokens(["Golden Gate", "bridge"])
        ['Golden_Gate', 'bridge']

    """
    return ["_".join(keyword.split()) for keyword in keywords if keyword.strip()]


def _check_title(title: Any) -> None:  # noqa: ANN401
    if not isinstance(title, str) or not title.strip():
        msg = "Photo title must not be empty"
        raise ValidationError(msg)


def _check_transition(photo: Photo, operation: str) -> None:
    if photo.state not in _ALLOWED_FROM[operation]:
        raise InvalidTransition(photo.state.value, operation)


class AssetLifecycle:
    """
    Orchestrates the metadata codec, rendition generator and tag vocabulary for photos.

    Callers must serialize operations on the same photo; nothing here locks.
    """

    def __init__(
        self,
        session: Session,
        layout: StorageLayout | None = None,
        *,
        codec: MetadataCodec | None = None,
        renditions: RenditionGenerator | None = None,
    ) -> None:
        self.session = session
        self.layout = layout or StorageLayout()
        self.codec = codec or MetadataCodec()
        self.renditions = renditions or RenditionGenerator()
        self.vocabulary = TagVocabulary(session)

    # Create

    def _check_unique_path(self, photo: Photo) -> None:
        with self.session.no_autoflush:
            existing = self.session.scalars(
                select(Photo.id).where(Photo.path == photo.path),
            ).first()
        if existing is not None:
            raise DuplicatePath(photo.path)

    def _apply_file_metadata(self, photo: Photo, snapshot: MetadataSnapshot) -> None:
        for field in DESCRIPTIVE_FIELDS:
            value = getattr(snapshot, field)
            if value is None or photo.source_of(field) is not FieldSource.UNSET:
                continue
            photo.set_field(field, value, FieldSource.FILE)
            logger.debug("field_read_from_file", field=field)

    def _seed_tags(self, photo: Photo, tag_list: str | None, keywords: list[str]) -> None:
        seed = split_tag_list(tag_list)
        if not seed:
            seed = split_tag_list(self.vocabulary.album_tag_list(photo.album))
        seed.extend(keyword_tokens(keywords))
        for tag in self.vocabulary.resolve(seed):
            self.vocabulary.attach(photo.id, tag.id)
        self.vocabulary.refresh(photo)
        logger.debug("tags_seeded", tag_list=photo.tag_list)

    def _run_renditions(self, photo: Photo) -> list[Rendition]:
        source = self.layout.source_path(photo)
        target_dir = self.layout.rendition_dir(photo.album)
        return list(self.renditions.generate(source, target_dir, photo.id))

    def on_create(self, photo: Photo, tag_list: str | None = None) -> Photo:
        """
        Persist a pending photo and derive everything that comes from its source file.

        Validation happens before any side effect. Afterwards the record is committed even
        if the metadata or rendition stage fails; such failures are raised together as
        :class:`IngestFailed` once both stages ran.
        """
        _check_title(photo.title)
        _check_transition(photo, "create")
        self._check_unique_path(photo)

        with logger.contextualize(photo_path=photo.path):
            failures: list[tuple[str, BaseException]] = []
            snapshot = MetadataSnapshot()
            try:
                snapshot = self.codec.read(self.layout.source_path(photo))
            except PhotoLifecycleError as e:
                logger.warning("ingest_stage_failed", stage="metadata", error=str(e))
                failures.append(("metadata", e))
            else:
                self._apply_file_metadata(photo, snapshot)

            photo.state = PhotoState.CREATED
            self.session.add(photo)
            try:
                self.session.flush()
            except IntegrityError as e:
                self.session.rollback()
                photo.state = PhotoState.PENDING
                raise DuplicatePath(photo.path) from e

            self._seed_tags(photo, tag_list, snapshot.keywords)
            self.session.commit()
            logger.info("photo_record_created", photo_id=photo.id, title=photo.title)

            with logger.contextualize(photo_id=photo.id):
                try:
                    produced = self._run_renditions(photo)
                except PhotoLifecycleError as e:
                    logger.warning("ingest_stage_failed", stage="renditions", error=str(e))
                    failures.append(("renditions", e))
                else:
                    logger.info("renditions_generated", labels=[r.label for r in produced])

        if failures:
            raise IngestFailed(failures)
        return photo

    def regenerate(self, photo: Photo) -> list[Rendition]:
        """Rebuild the renditions of an existing photo from its source file."""
        _check_transition(photo, "regenerate")
        with logger.contextualize(photo_id=photo.id):
            produced = self._run_renditions(photo)
            logger.info("renditions_regenerated", labels=[r.label for r in produced])
        return produced

    # Update

    def snapshot(self, photo: Photo) -> MetadataSnapshot:
        """The record's current values as they should appear in the file."""
        return MetadataSnapshot(
            latitude=photo.latitude,
            longitude=photo.longitude,
            title=photo.title,
            description=photo.description,
            keywords=photo.tag_list.split(),
        )

    def on_update(self, photo: Photo, changes: Mapping[str, Any]) -> set[str]:
        """
        Apply edits to the record, then push the full field set into the file.

        The file is only rewritten when at least one value actually changed. The record
        keeps the new values even when that write fails (:class:`MetadataWriteFailed`).

        Returns:
            Names of the fields whose value changed.

        """
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            msg = f"Fields cannot be edited: {', '.join(sorted(unknown))}"
            raise ValidationError(msg)
        if "title" in changes:
            _check_title(changes["title"])
        _check_transition(photo, "update")

        changed: set[str] = set()
        cleared: set[str] = set()
        with logger.contextualize(photo_id=photo.id):
            for field in DESCRIPTIVE_FIELDS:
                if field not in changes:
                    continue
                value = changes[field]
                if value != getattr(photo, field):
                    changed.add(field)
                    if value is None:
                        cleared.add(field)
                photo.set_field(field, value, FieldSource.USER)

            if "tag_list" in changes:
                added, removed = self.vocabulary.sync(photo, changes["tag_list"])
                if added or removed:
                    changed.add("tag_list")
                    if not photo.tag_list:
                        cleared.add("keywords")

            photo.state = PhotoState.UPDATED
            self.session.commit()
            logger.info("photo_record_updated", changed=sorted(changed))

            if not changed:
                logger.debug("metadata_write_skipped_no_changes")
                return changed

            source = self.layout.source_path(photo)
            try:
                self.codec.write(source, self.snapshot(photo), clear=cleared)
            except MetadataUnwritable as e:
                raise MetadataWriteFailed(source, e.cause) from e
        return changed

    # Tagging

    def tag(self, photo: Photo, text: str) -> bool:
        _check_transition(photo, "tag")
        added = self.vocabulary.tag(photo, text)
        self.session.commit()
        return added

    def untag(self, photo: Photo, text: str) -> bool:
        _check_transition(photo, "tag")
        removed = self.vocabulary.untag(photo, text)
        self.session.commit()
        return removed

    # Delete

    def on_delete(self, photo: Photo) -> None:
        """
        Remove the source file and every rendition, then the record.

        Each removal is attempted independently; missing files are fine. Removal failures
        are raised together as :class:`CleanupIncomplete` after the record is gone.
        """
        _check_transition(photo, "delete")
        with logger.contextualize(photo_id=photo.id):
            targets: list[Path] = [
                self.layout.source_path(photo),
                *self.layout.rendition_paths(photo).values(),
            ]
            failures: list[tuple[Path, BaseException]] = []
            removed = 0
            for path in targets:
                try:
                    path.unlink()
                except FileNotFoundError:
                    continue
                except OSError as e:
                    logger.error("file_removal_failed", file=str(path), error=str(e))
                    failures.append((path, e))
                else:
                    removed += 1

            photo.state = PhotoState.DELETED
            self.session.delete(photo)
            self.session.commit()
            logger.info("photo_deleted", files_removed=removed, failures=len(failures))

        if failures:
            raise CleanupIncomplete(failures)
