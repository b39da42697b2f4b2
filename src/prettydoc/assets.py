"""Inline referenced binary assets as base64 ``data:`` URLs."""

from __future__ import annotations

import base64
import html
import io
import logging
import mimetypes
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional
from urllib.parse import unquote, urlparse

from .errors import AssetError

LOG = logging.getLogger("prettydoc")

FAILED_SUFFIX = "?b64_failed!"
RESOURCES_DIR = Path(__file__).resolve().parent / "resources"
ICONS_DIR = RESOURCES_DIR / "icons"

ASSET_TOKEN_RE = re.compile(r"@@ASSET:([A-Za-z0-9_.-]+)@@")
IMG_SRC_RE = re.compile(r'(<img\b[^>]*?\bsrc=")([^"]*)(")', re.IGNORECASE)


@dataclass(frozen=True)
class BundledAsset:
    name: str
    mime: str
    data: bytes

    def data_url(self) -> str:
        return encode_data_url(self.data, self.mime)


def encode_data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def load_bundled_icons(icons_dir: Path = ICONS_DIR) -> Dict[str, BundledAsset]:
    assets: Dict[str, BundledAsset] = {}
    for path in sorted(icons_dir.glob("*.svg")):
        assets[path.name] = BundledAsset(name=path.name, mime="image/svg+xml", data=path.read_bytes())
    return assets


def inline_bundled_assets(text: str, assets: Mapping[str, BundledAsset]) -> str:
    def repl(match: re.Match) -> str:
        asset = assets.get(match.group(1))
        if asset is None:
            LOG.warning("Unknown bundled asset token: %s", match.group(0))
            return match.group(0)
        return asset.data_url()

    return ASSET_TOKEN_RE.sub(repl, text)


def normalize_path_ref(ref: str) -> str:
    ref = ref.replace("\\", "/")
    if ref.startswith("file://"):
        ref = ref[len("file://") :]
    return ref


def is_url(ref: str) -> bool:
    parsed = urlparse(ref.strip())
    scheme = parsed.scheme.lower()
    # Single letter schemes are Windows drive letters.
    if len(scheme) < 2 or scheme == "file":
        return False
    return bool(parsed.netloc) or scheme in {"data", "mailto"}


def resolve_asset(ref: str, base_dir: Path) -> Optional[Path]:
    """Map an asset reference to an existing file, or ``None``.

    The reference is tried as given first, then relative to ``base_dir``. Both
    the literal reference and its HTML/percent decoded form are tried, since
    the Markdown renderer escapes attribute values.
    """
    ref = (ref or "").strip()
    if not ref or is_url(ref):
        return None

    candidates = [normalize_path_ref(ref)]
    decoded = normalize_path_ref(unquote(html.unescape(ref)))
    if decoded not in candidates:
        candidates.append(decoded)

    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_file():
            return path
        if not path.is_absolute():
            joined = base_dir / path
            if joined.is_file():
                return joined
    return None


def _guess_mime_type(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    return mime or "application/octet-stream"


def sniff_mime(data: bytes, path: Optional[Path] = None) -> str:
    try:
        from PIL import Image, UnidentifiedImageError  # type: ignore
    except Exception as exc:
        raise RuntimeError(f"Pillow not available: {exc}") from exc

    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError, ValueError):
        fmt = None
    if fmt and Image.MIME.get(fmt):
        return Image.MIME[fmt]

    head = data[:512].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:2048].lower()):
        return "image/svg+xml"
    if head.startswith(b"%pdf-"):
        return "application/pdf"
    if path is not None:
        return _guess_mime_type(path)
    return "application/octet-stream"


def read_asset(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise AssetError(f"Unable to read asset {path}", str(path)) from exc


def data_url(path: Path, mime: Optional[str] = None) -> str:
    data = read_asset(path)
    return encode_data_url(data, mime or sniff_mime(data, path))


def inline_embedded_assets(
    text: str,
    base_dir: Path,
    *,
    mark_failures: bool = False,
    strict: bool = False,
) -> str:
    """Rewrite ``<img src="...">`` references to local files as data URLs.

    URLs are kept. References that cannot be resolved are kept as they are,
    or get ``FAILED_SUFFIX`` appended when ``mark_failures`` is set. A file
    that exists but cannot be read raises ``AssetError`` when ``strict``.
    """

    def _failed(ref: str) -> str:
        return f"{ref}{FAILED_SUFFIX}" if mark_failures else ref

    def repl(match: re.Match) -> str:
        before, ref, after = match.group(1), match.group(2), match.group(3)
        if not ref.strip() or is_url(ref):
            return match.group(0)
        path = resolve_asset(ref, base_dir)
        if path is None:
            LOG.warning("Asset not found, left unresolved: %s (base %s)", ref, base_dir)
            return f"{before}{_failed(ref)}{after}"
        try:
            encoded = data_url(path)
        except AssetError:
            if strict:
                raise
            LOG.warning("Asset could not be read, left unresolved: %s", path, exc_info=LOG.isEnabledFor(logging.DEBUG))
            return f"{before}{_failed(ref)}{after}"
        LOG.debug("Inlined asset %s", path)
        return f"{before}{encoded}{after}"

    return IMG_SRC_RE.sub(repl, text)


def inline_asset_reference(ref: str, base_dir: Path, mime: Optional[str] = None) -> str:
    """Template helper variant: data URL, or ``ref`` + ``FAILED_SUFFIX``."""
    path = resolve_asset(ref, base_dir)
    if path is None:
        LOG.warning("Template asset not found: %s (base %s)", ref, base_dir)
        return f"{ref}{FAILED_SUFFIX}"
    try:
        return data_url(path, mime)
    except AssetError:
        LOG.warning("Template asset could not be read: %s", path)
        return f"{ref}{FAILED_SUFFIX}"
