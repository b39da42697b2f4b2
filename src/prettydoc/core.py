"""Core pipeline for prettydoc."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from jinja2 import Environment, TemplateError
from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from . import frontmatter
from .annotate import DEFAULT_RULES, PatternRule, apply_rules, load_rules
from .assets import (
    RESOURCES_DIR,
    BundledAsset,
    inline_asset_reference,
    inline_bundled_assets,
    inline_embedded_assets,
    load_bundled_icons,
)
from .errors import (
    ComposeError,
    ConfigError,
    MetadataPayloadError,
    MetadataSyntaxError,
    format_error_chain,
)
from .frontmatter import Metadata
from .toc import Slugger, TocEntry, collect_headings, link_label, render_toc

LOG = logging.getLogger("prettydoc")

EXIT_INVALID_ARGS = 6
EXIT_OUTPUT = 7
EXIT_COMPOSE = 8

DEFAULT_TEMPLATE_PATH = RESOURCES_DIR / "template.html"
DEFAULT_STYLESHEET_PATH = RESOURCES_DIR / "style.css"
INPUT_EXTENSIONS = (".md", ".markdown")
OUTPUT_EXTENSIONS = (".html", ".htm", ".pdf")


@dataclass
class ComposeConfig:
    tables: bool = True
    smart_punctuation: bool = True
    metadata_delimiter: str = frontmatter.DEFAULT_DELIMITER
    include_toc: Optional[bool] = None
    stylesheet: Optional[Path] = None
    template: Optional[Path] = None
    rules: Optional[Path] = None
    asset_base_dir: Optional[Path] = None
    mark_failed_assets: bool = False
    strict_assets: bool = False
    html_output: Optional[Path] = None
    verbose: bool = False
    debug: bool = False

    def validate(self) -> None:
        try:
            frontmatter.check_delimiter(self.metadata_delimiter)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
        for label, path in (("stylesheet", self.stylesheet), ("template", self.template), ("rules", self.rules)):
            if path is not None and not Path(path).is_file():
                raise ConfigError(f"{label.capitalize()} file not found: {path}")
        if self.asset_base_dir is not None and not Path(self.asset_base_dir).is_dir():
            raise ConfigError(f"Asset base directory not found: {self.asset_base_dir}")


@dataclass
class DocumentRecord:
    index: int
    metadata: Optional[Metadata]
    body: str
    source: Optional[Path] = None
    title_anchor: Optional[str] = None


@dataclass
class ComposeResult:
    html: str
    toc_html: str
    documents: List[DocumentRecord] = field(default_factory=list)
    toc_entries: List[TocEntry] = field(default_factory=list)
    include_toc: bool = False


def _resolve_log_level(verbose: bool, debug: bool) -> int:
    return logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)


def _configure_prettydoc_logger(level: int) -> None:
    LOG.setLevel(level)
    LOG.propagate = False
    if not LOG.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        handler.setLevel(level)
        LOG.addHandler(handler)
    else:
        for handler in LOG.handlers:
            handler.setLevel(level)
            if handler.formatter is None:
                handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))


def setup_logging(verbose: bool, debug: bool) -> None:
    level = _resolve_log_level(verbose, debug)
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")
    _configure_prettydoc_logger(level)


def _progress_bar_line(current: int, total: int, width: int = 24) -> str:
    if total <= 0:
        return "[?]"
    clamped = max(0, min(current, total))
    filled = min(int((clamped / total) * width), width)
    return "[" + "#" * filled + "." * (width - filled) + "]"


def _log_verbose_progress(prefix: str, current: int, total: int, detail: Optional[str] = None) -> None:
    bar = _progress_bar_line(current, total)
    counter = f"[{current}/{total}]" if total > 0 else f"[{current}]"
    if total > 0:
        msg = f"{prefix} {bar} {counter} ({(current / total) * 100.0:.1f}%)"
    else:
        msg = f"{prefix} {bar} {counter}"
    if detail:
        msg = f"{msg} | {detail}"
    LOG.info(msg)


def safe_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8", newline="\n")


def build_markdown_parser(config: ComposeConfig) -> MarkdownIt:
    md = MarkdownIt("commonmark", {"typographer": bool(config.smart_punctuation)})
    md.enable("strikethrough")
    if config.tables:
        md.enable("table")
    if config.smart_punctuation:
        md.enable(["replacements", "smartquotes"])
    return md


def read_document(path: Path) -> str:
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ComposeError(f"Unable to read input document {path}") from exc
    return text.replace("\r\n", "\n")


def split_metadata(text: str, delimiter: str, source: Any = "<input>") -> Tuple[Optional[Metadata], str]:
    """Return ``(metadata, body)``; metadata problems never stop the document."""
    try:
        metadata, offset = frontmatter.extract(text, delimiter)
    except MetadataPayloadError as exc:
        LOG.warning("%s: %s; metadata ignored", source, format_error_chain(exc))
        return None, text[exc.body_offset :]
    except MetadataSyntaxError as exc:
        if text.lstrip().startswith(delimiter[0]):
            LOG.warning("%s: %s; metadata ignored", source, format_error_chain(exc))
        else:
            LOG.debug("%s: no metadata block", source)
        return None, text
    return metadata, text[offset:]


def render_markdown(body: str, parser: MarkdownIt, slugger: Slugger) -> Tuple[str, List[TocEntry]]:
    env: Dict[str, Any] = {}
    tokens = parser.parse(body, env)
    headings = collect_headings(SyntaxTreeNode(tokens), slugger)
    heading_tokens = [token for token in tokens if token.type == "heading_open"]
    for token, heading in zip(heading_tokens, headings):
        token.attrSet("id", heading.anchor)
    raw_html = parser.renderer.render(tokens, parser.options, env)
    return raw_html, [heading.to_entry() for heading in headings]


def process_document(
    index: int,
    text: str,
    *,
    source: Optional[Path],
    parser: MarkdownIt,
    slugger: Slugger,
    rules: Sequence[PatternRule],
    bundled: Mapping[str, BundledAsset],
    config: ComposeConfig,
) -> Tuple[DocumentRecord, List[TocEntry]]:
    label = str(source) if source is not None else f"<document {index}>"
    metadata, body = split_metadata(text, config.metadata_delimiter, label)

    entries: List[TocEntry] = []
    title_anchor: Optional[str] = None
    if metadata is not None and metadata.title:
        title_anchor = slugger.slug(metadata.title)
        entries.append(TocEntry(0, link_label(title_anchor, metadata.title)))

    raw_html, heading_entries = render_markdown(body, parser, slugger)
    entries.extend(heading_entries)
    LOG.debug("%s: %d heading(s)", label, len(heading_entries))

    annotated = apply_rules(raw_html, rules)
    annotated = inline_bundled_assets(annotated, bundled)
    base_dir = source.parent if source is not None else Path.cwd()
    annotated = inline_embedded_assets(
        annotated,
        base_dir,
        mark_failures=config.mark_failed_assets,
        strict=config.strict_assets,
    )

    record = DocumentRecord(index=index, metadata=metadata, body=annotated, source=source, title_anchor=title_anchor)
    return record, entries


def build_template_environment(asset_base_dir: Path) -> Environment:
    env = Environment(autoescape=True, keep_trailing_newline=True)

    def inline_asset(path: str, mime: Optional[str] = None) -> str:
        return inline_asset_reference(str(path), asset_base_dir, mime)

    env.globals["inline_asset"] = inline_asset
    return env


def render_template(template_text: str, context: Mapping[str, Any], asset_base_dir: Path) -> str:
    env = build_template_environment(asset_base_dir)
    try:
        return env.from_string(template_text).render(**context)
    except TemplateError as exc:
        raise ComposeError("Template rendering failed") from exc


def _read_resource(path: Path, label: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ComposeError(f"Unable to read {label} {path}") from exc


def compose_texts(
    texts: Sequence[Tuple[Optional[Path], str]],
    config: Optional[ComposeConfig] = None,
) -> ComposeResult:
    config = config or ComposeConfig()
    config.validate()
    if not texts:
        raise ComposeError("No input documents")

    parser = build_markdown_parser(config)
    rules: Sequence[PatternRule] = load_rules(Path(config.rules)) if config.rules else DEFAULT_RULES
    bundled = load_bundled_icons()
    slugger = Slugger()

    documents: List[DocumentRecord] = []
    toc_entries: List[TocEntry] = []
    total = len(texts)
    for index, (source, text) in enumerate(texts):
        record, entries = process_document(
            index,
            text,
            source=source,
            parser=parser,
            slugger=slugger,
            rules=rules,
            bundled=bundled,
            config=config,
        )
        documents.append(record)
        toc_entries.extend(entries)
        if config.verbose:
            _log_verbose_progress("compose", index + 1, total, detail=str(source or f"document {index}"))

    toc_html = render_toc(toc_entries)

    include_toc = config.include_toc
    if include_toc is None:
        include_toc = any(doc.metadata is not None and doc.metadata.include_toc for doc in documents)

    stylesheet = Path(config.stylesheet) if config.stylesheet else DEFAULT_STYLESHEET_PATH
    template = Path(config.template) if config.template else DEFAULT_TEMPLATE_PATH
    if config.asset_base_dir is not None:
        asset_base_dir = Path(config.asset_base_dir)
    elif config.template:
        asset_base_dir = template.parent
    elif documents[0].source is not None:
        asset_base_dir = documents[0].source.parent
    else:
        asset_base_dir = Path.cwd()

    first_title = next((doc.metadata.title for doc in documents if doc.metadata and doc.metadata.title), None)
    context = {
        "styles": _read_resource(stylesheet, "stylesheet"),
        "toc": toc_html,
        "include_toc": include_toc,
        "documents": documents,
        "title": first_title,
    }
    html = render_template(_read_resource(template, "template"), context, asset_base_dir)

    if config.html_output:
        safe_write_text(Path(config.html_output), "\n".join(doc.body for doc in documents))
        LOG.info("Intermediate HTML written: %s", config.html_output)

    return ComposeResult(
        html=html,
        toc_html=toc_html,
        documents=documents,
        toc_entries=toc_entries,
        include_toc=bool(include_toc),
    )


def compose(inputs: Sequence[Path], config: Optional[ComposeConfig] = None) -> ComposeResult:
    texts = [(Path(path), read_document(Path(path))) for path in inputs]
    return compose_texts(texts, config)


def write_output(result: ComposeResult, out_path: Path) -> None:
    if out_path.suffix.lower() != ".pdf":
        try:
            safe_write_text(out_path, result.html)
        except OSError as exc:
            raise ComposeError(f"Unable to write output {out_path}") from exc
        return

    try:
        from weasyprint import HTML  # type: ignore
    except Exception as exc:
        raise ComposeError("PDF output requires weasyprint (pip install 'prettydoc[pdf]')") from exc

    out_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        HTML(string=result.html, base_url=str(out_path.parent)).write_pdf(str(out_path))
    except Exception as exc:
        raise ComposeError(f"PDF rendering failed for {out_path}") from exc


def describe_metadata(path: Path, delimiter: str = frontmatter.DEFAULT_DELIMITER) -> str:
    text = read_document(path)
    metadata, _ = split_metadata(text, delimiter, path)
    if metadata is None:
        return f"# {path}: no metadata\n"
    return f"# {path}\n" + frontmatter.dump(metadata, delimiter)
