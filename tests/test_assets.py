import base64
import re
from pathlib import Path

import pytest

from prettydoc import assets
from prettydoc.errors import AssetError

DATA_SRC_RE = re.compile(r'src="data:([^;]+);base64,([^"]+)"')


def _write_test_png(path: Path, *, width: int = 4, height: int = 4) -> None:
    from PIL import Image

    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(path, format="PNG")


def _decode_single_data_src(html: str):
    matches = DATA_SRC_RE.findall(html)
    assert len(matches) == 1, html
    mime, payload = matches[0]
    return mime, base64.b64decode(payload)


def test_sibling_image_is_inlined(tmp_path: Path):
    image = tmp_path / "pic.png"
    _write_test_png(image)

    html = assets.inline_embedded_assets('<p><img src="pic.png" alt="p" /></p>', tmp_path)

    mime, data = _decode_single_data_src(html)
    assert mime == "image/png"
    assert data == image.read_bytes()
    assert html.startswith('<p><img src="data:image/png;base64,')
    assert html.endswith('" alt="p" /></p>')


def test_image_in_subdirectory_and_percent_encoded_name(tmp_path: Path):
    image = tmp_path / "img" / "my pic.png"
    _write_test_png(image)

    html = assets.inline_embedded_assets('<img src="img/my%20pic.png" alt="" />', tmp_path)

    _, data = _decode_single_data_src(html)
    assert data == image.read_bytes()


def test_absolute_path_is_used_as_is(tmp_path: Path):
    image = tmp_path / "abs.png"
    _write_test_png(image)
    elsewhere = tmp_path / "other"
    elsewhere.mkdir()

    html = assets.inline_embedded_assets(f'<img src="{image}" />', elsewhere)

    _, data = _decode_single_data_src(html)
    assert data == image.read_bytes()


def test_mime_comes_from_content_not_extension(tmp_path: Path):
    image = tmp_path / "picture.bin"
    _write_test_png(image)

    html = assets.inline_embedded_assets('<img src="picture.bin" />', tmp_path)

    mime, _ = _decode_single_data_src(html)
    assert mime == "image/png"


def test_missing_file_leaves_reference_unchanged(tmp_path: Path):
    html = '<p><img src="missing.png" alt="m" /></p>'
    assert assets.inline_embedded_assets(html, tmp_path) == html


def test_missing_file_can_be_marked(tmp_path: Path):
    html = assets.inline_embedded_assets('<img src="missing.png" />', tmp_path, mark_failures=True)
    assert html == '<img src="missing.png?b64_failed!" />'


def test_urls_are_not_touched(tmp_path: Path):
    html = (
        '<img src="https://example.com/a.png" />'
        '<img src="data:image/png;base64,AAAA" />'
        '<img src="" />'
    )
    assert assets.inline_embedded_assets(html, tmp_path, mark_failures=True) == html


def test_only_image_sources_are_rewritten(tmp_path: Path):
    _write_test_png(tmp_path / "pic.png")
    html = '<script src="pic.png"></script>'
    assert assets.inline_embedded_assets(html, tmp_path) == html


def test_unreadable_file_is_left_alone_unless_strict(tmp_path: Path, monkeypatch):
    _write_test_png(tmp_path / "pic.png")

    def broken_read(path):
        raise AssetError(f"Unable to read asset {path}", str(path))

    monkeypatch.setattr(assets, "read_asset", broken_read)
    html = '<img src="pic.png" />'

    assert assets.inline_embedded_assets(html, tmp_path) == html
    assert assets.inline_embedded_assets(html, tmp_path, mark_failures=True) == '<img src="pic.png?b64_failed!" />'
    with pytest.raises(AssetError):
        assets.inline_embedded_assets(html, tmp_path, strict=True)


def test_read_asset_wraps_os_errors(tmp_path: Path):
    with pytest.raises(AssetError) as excinfo:
        assets.read_asset(tmp_path / "nope.bin")
    assert isinstance(excinfo.value.__cause__, OSError)


def test_sniff_mime():
    svg = b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg"></svg>'

    assert assets.sniff_mime(svg) == "image/svg+xml"
    assert assets.sniff_mime(b"%PDF-1.7 ...") == "application/pdf"
    assert assets.sniff_mime(b"plain words", Path("notes.txt")) == "text/plain"
    assert assets.sniff_mime(b"\x00\x01\x02") == "application/octet-stream"


@pytest.mark.parametrize(
    "ref, expected",
    [
        ("https://example.com/x.png", True),
        ("http://example.com", True),
        ("data:image/png;base64,AAAA", True),
        ("img/x.png", False),
        ("/abs/x.png", False),
        ("C:/images/x.png", False),
        ("file:///tmp/x.png", False),
    ],
)
def test_is_url(ref, expected):
    assert assets.is_url(ref) is expected


def test_resolve_asset(tmp_path: Path):
    image = tmp_path / "x.png"
    _write_test_png(image)

    assert assets.resolve_asset("x.png", tmp_path) == tmp_path / "x.png"
    assert assets.resolve_asset(f"file://{image}", tmp_path) == image
    assert assets.resolve_asset("y.png", tmp_path) is None
    assert assets.resolve_asset("https://example.com/x.png", tmp_path) is None


def test_template_helper_reference(tmp_path: Path):
    image = tmp_path / "logo.png"
    _write_test_png(image)

    encoded = assets.inline_asset_reference("logo.png", tmp_path)
    forced = assets.inline_asset_reference("logo.png", tmp_path, mime="image/x-custom")

    assert encoded.startswith("data:image/png;base64,")
    assert base64.b64decode(encoded.split(",", 1)[1]) == image.read_bytes()
    assert forced.startswith("data:image/x-custom;base64,")
    assert assets.inline_asset_reference("gone.png", tmp_path) == "gone.png?b64_failed!"


def test_bundled_icons_replace_asset_tokens():
    icons = assets.load_bundled_icons()

    assert {"external_link.svg", "checkbox_checked.svg", "checkbox_unchecked.svg"} <= set(icons)

    html = assets.inline_bundled_assets('<img src="@@ASSET:external_link.svg@@" />', icons)
    mime, data = _decode_single_data_src(html)
    assert mime == "image/svg+xml"
    assert data == (assets.ICONS_DIR / "external_link.svg").read_bytes()


def test_unknown_bundled_token_is_kept():
    html = '<img src="@@ASSET:nope.svg@@" />'
    assert assets.inline_bundled_assets(html, {}) == html


def test_explicit_asset_with_caller_supplied_bytes():
    asset = assets.BundledAsset(name="dot.bin", mime="application/x-dot", data=b"\x01\x02")

    out = assets.inline_bundled_assets("a @@ASSET:dot.bin@@ b", {"dot.bin": asset})

    assert out == "a data:application/x-dot;base64,AQI= b"
