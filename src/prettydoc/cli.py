"""Command-line interface for prettydoc."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .version import __version__

DEFAULT_OUTPUT = "output.html"


def _get_usage() -> str:
    return (
        f"prettydoc {__version__}\n"
        "Usage:\n"
        "  prettydoc [--help] [--version|--ver]\n"
        "  prettydoc INPUT.md [INPUT.md ...] [-o OUTPUT] [options]\n\n"
        "Options:\n"
        "  -o, --output PATH            Output document, .html or .pdf (default: output.html)\n"
        "  --style PATH                 Stylesheet replacing the bundled one\n"
        "  --template PATH              Jinja2 template replacing the bundled one\n"
        "  --rules PATH                 YAML rule table replacing the default style rules\n"
        "  --toc / --no-toc             Force the table of contents on or off\n"
        "  --no-tables                  Disable Markdown tables\n"
        "  --no-smart-punctuation       Disable smart quotes and typographic replacements\n"
        "  --delimiter MARKER           Metadata block delimiter (default: ---)\n"
        "  --asset-dir DIR              Base directory for assets referenced by the template\n"
        "  --html-output PATH           Also write the intermediate annotated HTML\n"
        "  --mark-failed-assets         Append ?b64_failed! to unresolved image references\n"
        "  --strict-assets              Abort when an existing asset cannot be read\n"
        "  --dump-metadata              Print the metadata block of each input and exit\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("inputs", nargs="*")
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("-o", "--output", default=DEFAULT_OUTPUT, help="Output document path")
    parser.add_argument("--style", help="Stylesheet replacing the bundled one")
    parser.add_argument("--template", help="Jinja2 template replacing the bundled one")
    parser.add_argument("--rules", help="YAML rule table replacing the default style rules")
    toc_group = parser.add_mutually_exclusive_group()
    toc_group.add_argument("--toc", dest="toc", action="store_const", const=True, default=None)
    toc_group.add_argument("--no-toc", dest="toc", action="store_const", const=False)
    parser.add_argument("--no-tables", action="store_true", help="Disable Markdown tables")
    parser.add_argument("--no-smart-punctuation", action="store_true", help="Disable typographer")
    parser.add_argument("--delimiter", default="---", help="Metadata block delimiter")
    parser.add_argument("--asset-dir", help="Base directory for template assets")
    parser.add_argument("--html-output", help="Write the intermediate annotated HTML to this path")
    parser.add_argument("--mark-failed-assets", action="store_true")
    parser.add_argument("--strict-assets", action="store_true")
    parser.add_argument("--dump-metadata", action="store_true")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _optional_path(value: str | None) -> Path | None:
    if not value:
        return None
    return Path(value).expanduser().resolve()


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit:
        print(_get_usage())
        return 2
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    from prettydoc import core
    from prettydoc.errors import PrettyDocError, format_error_chain

    if not args.inputs:
        print(_get_usage())
        print("At least one input document is required", file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    inputs = [Path(raw).expanduser().resolve() for raw in args.inputs]
    for path in inputs:
        if path.suffix.lower() not in core.INPUT_EXTENSIONS:
            print(f"Input file must have a Markdown extension (.md): {path}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        if not path.is_file():
            print(f"Input file not found: {path}", file=sys.stderr)
            return core.EXIT_INVALID_ARGS

    core.setup_logging(args.verbose, args.debug)

    if args.dump_metadata:
        try:
            for path in inputs:
                sys.stdout.write(core.describe_metadata(path, args.delimiter))
        except (PrettyDocError, ValueError) as exc:
            print(format_error_chain(exc), file=sys.stderr)
            return core.EXIT_INVALID_ARGS
        return 0

    out_path = Path(args.output).expanduser().resolve()
    if out_path.suffix.lower() not in core.OUTPUT_EXTENSIONS:
        print(f"Output file must have a .html or .pdf extension: {out_path}", file=sys.stderr)
        return core.EXIT_INVALID_ARGS
    if out_path.exists() and out_path.is_dir():
        print(f"Output path is a directory: {out_path}", file=sys.stderr)
        return core.EXIT_OUTPUT

    config = core.ComposeConfig(
        tables=not args.no_tables,
        smart_punctuation=not args.no_smart_punctuation,
        metadata_delimiter=str(args.delimiter),
        include_toc=args.toc,
        stylesheet=_optional_path(args.style),
        template=_optional_path(args.template),
        rules=_optional_path(args.rules),
        asset_base_dir=_optional_path(args.asset_dir),
        mark_failed_assets=bool(args.mark_failed_assets),
        strict_assets=bool(args.strict_assets),
        html_output=_optional_path(args.html_output),
        verbose=bool(args.verbose),
        debug=bool(args.debug),
    )

    try:
        config.validate()
    except PrettyDocError as exc:
        print(format_error_chain(exc), file=sys.stderr)
        return core.EXIT_INVALID_ARGS

    try:
        result = core.compose(inputs, config)
    except PrettyDocError as exc:
        print(f"Composition failed: {format_error_chain(exc)}", file=sys.stderr)
        return core.EXIT_COMPOSE

    try:
        core.write_output(result, out_path)
    except PrettyDocError as exc:
        print(format_error_chain(exc), file=sys.stderr)
        return core.EXIT_OUTPUT

    if args.verbose:
        print(f"Document written to {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
