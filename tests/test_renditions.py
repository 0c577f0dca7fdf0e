"""Tests for rendition sizing, ordering and per-size failure handling."""

from pathlib import Path

import pytest
from conftest import write_image
from PIL import Image

import photo_lifecycle.renditions as r
from photo_lifecycle.errors import RenditionsIncomplete, UnsupportedImage


def _sizes(renditions: list[r.Rendition]) -> dict[str, tuple[int, int]]:
    sizes = {}
    for rendition in renditions:
        with Image.open(rendition.path) as img:
            sizes[rendition.label] = img.size
    return sizes


@pytest.mark.parametrize("workers", [1, 3])
def test_generate_yields_three_sizes_in_order(tmp_path: Path, workers: int) -> None:
    """Long edges are 85/150/800 with the aspect ratio kept, yielded thumb->album->large."""
    source = write_image(tmp_path / "src" / "beach.jpg", (1600, 1200))
    target_dir = tmp_path / "out"

    produced = list(r.RenditionGenerator(workers=workers).generate(source, target_dir, 7))

    assert [rendition.label for rendition in produced] == ["thumb", "album", "large"]
    assert [rendition.path.name for rendition in produced] == [
        "7_thumb.jpg",
        "7_album.jpg",
        "7_large.jpg",
    ]
    sizes = _sizes(produced)
    for label, long_edge in {"thumb": 85, "album": 150, "large": 800}.items():
        width, height = sizes[label]
        assert max(width, height) == long_edge
        assert width / height == pytest.approx(4 / 3, rel=0.03)


def test_generate_clamps_to_small_sources(tmp_path: Path) -> None:
    """Sources smaller than a target size are never upscaled."""
    source = write_image(tmp_path / "tiny.png", (100, 50))

    sizes = _sizes(list(r.RenditionGenerator().generate(source, tmp_path / "out", 1)))

    assert max(sizes["thumb"]) == 85
    assert sizes["album"] == (100, 50)
    assert sizes["large"] == (100, 50)


def test_generate_portrait_uses_height_as_long_edge(tmp_path: Path) -> None:
    """The declared dimension applies to whichever edge is longer."""
    source = write_image(tmp_path / "portrait.jpg", (600, 1200))

    sizes = _sizes(list(r.RenditionGenerator().generate(source, tmp_path / "out", 2)))

    assert sizes["thumb"][1] == 85
    assert sizes["album"][1] == 150
    assert sizes["large"] == (400, 800)


def test_resize_flattens_alpha_for_jpeg() -> None:
    """RGBA input is composited onto white before JPEG encoding."""
    img = Image.new("RGBA", (300, 200), (0, 0, 0, 0))

    out = r.resize(img, 150, "JPEG")

    assert out.mode == "RGB"
    assert out.getpixel((0, 0)) == (255, 255, 255)


def test_generate_keeps_alpha_for_png(tmp_path: Path) -> None:
    """Formats that support transparency keep the source mode."""
    source = write_image(tmp_path / "logo.png", (400, 400), mode="RGBA")

    produced = list(r.RenditionGenerator().generate(source, tmp_path / "out", 3))

    with Image.open(produced[0].path) as img:
        assert img.mode == "RGBA"


def test_undecodable_source_writes_nothing(tmp_path: Path) -> None:
    """A decode failure aborts the sequence before any rendition is written."""
    source = tmp_path / "broken.jpg"
    source.write_bytes(b"not really a jpeg")
    target_dir = tmp_path / "out"

    with pytest.raises(UnsupportedImage) as excinfo:
        list(r.RenditionGenerator().generate(source, target_dir, 4))

    assert excinfo.value.path == source
    assert not target_dir.exists()


def test_write_failure_does_not_stop_other_sizes(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """One failing size is reported while the remaining sizes are still produced."""
    source = write_image(tmp_path / "beach.jpg")
    real_write = r._write  # noqa: SLF001

    def failing_write(img: Image.Image, target: Path, fmt: str, quality: int) -> None:
        if "_album" in target.name:
            msg = "No space left on device"
            raise OSError(msg)
        real_write(img, target, fmt, quality)

    monkeypatch.setattr(r, "_write", failing_write)

    produced: list[str] = []
    with pytest.raises(RenditionsIncomplete) as excinfo:
        for rendition in r.RenditionGenerator().generate(source, tmp_path / "out", 5):
            produced.append(rendition.label)

    assert produced == ["thumb", "large"]
    assert [failure.size_label for failure in excinfo.value.failures] == ["album"]
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["5_large.jpg", "5_thumb.jpg"]


def test_unknown_extension_fails_every_size(tmp_path: Path) -> None:
    """A source whose extension has no encoder reports all sizes as failed."""
    source = tmp_path / "scan.unknownext"
    write_image(tmp_path / "scan.png").rename(source)

    with pytest.raises(RenditionsIncomplete) as excinfo:
        list(r.RenditionGenerator().generate(source, tmp_path / "out", 6))

    assert [f.size_label for f in excinfo.value.failures] == ["thumb", "album", "large"]
