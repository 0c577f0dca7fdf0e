"""Tests for tag normalization, race-safe resolution and association sync."""

import threading
from pathlib import Path

from sqlalchemy import func, select
from sqlalchemy.orm import Session

import photo_lifecycle.tags as t
from photo_lifecycle.db import create_db_engine, init_db, session_factory
from photo_lifecycle.models import Album, Photo, PhotoState, PhotoTag, Tag


def _persisted_photo(session: Session, album: Album, name: str = "a.jpg") -> Photo:
    photo = Photo(path=f"{album.path}/{name}", title=name, album=album, state=PhotoState.CREATED)
    session.add(photo)
    session.commit()
    return photo


def _tag_count(session: Session) -> int:
    return session.scalar(select(func.count()).select_from(Tag)) or 0


def test_split_tag_list_folds_and_deduplicates() -> None:
    """Tokens are case-folded and repeated tokens collapse, keeping first-seen order."""
    assert t.split_tag_list("Sunset beach SUNSET  Family") == ["sunset", "beach", "family"]
    assert t.split_tag_list("") == []
    assert t.split_tag_list(None) == []


def test_resolve_collapses_case_variants(session: Session) -> None:
    """'Sunset' and 'sunset' resolve to the same stored tag."""
    vocabulary = t.TagVocabulary(session)

    first = vocabulary.resolve(["Sunset", "sunset", "Beach"])
    second = vocabulary.resolve(["SUNSET"])

    assert [tag.title for tag in first] == ["sunset", "beach"]
    assert second[0].id == first[0].id
    assert _tag_count(session) == 2


def test_resolve_recovers_from_concurrent_insert(tmp_path: Path) -> None:
    """A unique-constraint conflict with another writer re-selects the winner's row."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}")
    init_db(engine)
    factory = session_factory(engine)

    with factory() as winner:
        (winning_tag,) = t.TagVocabulary(winner).resolve(["Sunset"])
        winner.commit()

    with factory() as loser:
        vocabulary = t.TagVocabulary(loser)
        real_find = vocabulary._find  # noqa: SLF001
        lookups: list[str] = []

        def stale_find(title: str) -> Tag | None:
            # The first lookup happens before the other writer committed.
            lookups.append(title)
            return None if len(lookups) == 1 else real_find(title)

        vocabulary._find = stale_find  # type: ignore[method-assign]  # noqa: SLF001
        (tag,) = vocabulary.resolve(["SUNSET"])
        loser.commit()

        assert tag.id == winning_tag.id
        assert lookups == ["sunset", "sunset"]
        assert _tag_count(loser) == 1

    engine.dispose()


def test_resolve_from_concurrent_sessions_shares_one_tag(tmp_path: Path) -> None:
    """Writers resolving the same tag at once wait for each other instead of failing."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'threads.db'}")
    init_db(engine)
    factory = session_factory(engine)
    variants = ["Sunset", "sunset", "SUNSET", "SunSet", "sunSET", " sunset "]
    barrier = threading.Barrier(len(variants))
    ids: list[int] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def worker(title: str) -> None:
        barrier.wait()
        try:
            with factory() as session:
                (tag,) = t.TagVocabulary(session).resolve([title])
                session.commit()
        except Exception as exc:  # noqa: BLE001
            with lock:
                errors.append(exc)
        else:
            with lock:
                ids.append(tag.id)

    threads = [threading.Thread(target=worker, args=(title,)) for title in variants]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(ids) == len(variants)
    assert len(set(ids)) == 1
    with factory() as session:
        assert _tag_count(session) == 1

    engine.dispose()


def test_attach_and_detach_are_idempotent(session: Session, album: Album) -> None:
    """Redundant attach/detach calls are no-ops rather than errors."""
    photo = _persisted_photo(session, album)
    vocabulary = t.TagVocabulary(session)
    (tag,) = vocabulary.resolve(["beach"])

    assert vocabulary.attach(photo.id, tag.id) is True
    assert vocabulary.attach(photo.id, tag.id) is False
    assert vocabulary.tag_list(photo.id) == "beach"

    assert vocabulary.detach(photo.id, tag.id) is True
    assert vocabulary.detach(photo.id, tag.id) is False
    assert vocabulary.tag_list(photo.id) == ""


def test_tag_then_untag_returns_to_original_set(session: Session, album: Album) -> None:
    """Tagging and untagging the same text restores the previous tag list."""
    photo = _persisted_photo(session, album)
    vocabulary = t.TagVocabulary(session)
    vocabulary.sync(photo, "family beach")
    before = photo.tag_list

    assert vocabulary.tag(photo, "Sunset") is True
    assert vocabulary.tag(photo, "sunset") is False
    assert photo.tag_list == "beach family sunset"

    assert vocabulary.untag(photo, "SUNSET") is True
    assert vocabulary.untag(photo, "sunset") is False
    assert vocabulary.untag(photo, "never-seen") is False
    assert photo.tag_list == before == "beach family"


def test_sync_applies_only_the_difference(session: Session, album: Album) -> None:
    """Associations kept by a sync retain their row identity."""
    photo = _persisted_photo(session, album)
    vocabulary = t.TagVocabulary(session)
    vocabulary.sync(photo, "beach family")
    kept_id = session.scalars(
        select(PhotoTag.id).join(Tag).where(PhotoTag.photo_id == photo.id, Tag.title == "beach"),
    ).one()

    added, removed = vocabulary.sync(photo, "Beach sunset")

    assert added == ["sunset"]
    assert removed == ["family"]
    assert photo.tag_list == "beach sunset"
    assert vocabulary.tag_list(photo.id) == photo.tag_list
    still_there = session.scalars(
        select(PhotoTag.id).join(Tag).where(PhotoTag.photo_id == photo.id, Tag.title == "beach"),
    ).one()
    assert still_there == kept_id


def test_orphan_tags_survive_detach(session: Session, album: Album) -> None:
    """Removing the last association leaves the tag in the vocabulary."""
    photo = _persisted_photo(session, album)
    vocabulary = t.TagVocabulary(session)
    vocabulary.sync(photo, "beach")
    vocabulary.sync(photo, "")

    assert photo.tag_list == ""
    assert _tag_count(session) == 1


def test_album_tag_list_is_sorted(session: Session, album: Album) -> None:
    """Album tags use the same sorted, space-joined projection as photos."""
    vocabulary = t.TagVocabulary(session)
    vocabulary.sync_album(album, "travel Summer")

    assert vocabulary.album_tag_list(album) == "summer travel"
    assert album.tag_list == "summer travel"

    vocabulary.sync_album(album, "summer")
    assert album.tag_list == "summer"
