"""Command-line utilities for talfred.

``talfred highlight`` runs the selection highlighter over an HTML file and
prints the annotated document.  ``talfred features`` lists the built-in
features.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.table import Table

if TYPE_CHECKING:
    import argparse

console = Console()


def _build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for talfred subcommands."""
    import argparse

    parser = argparse.ArgumentParser(
        prog="talfred",
        description="Run talfred features against HTML documents.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log debug output to logs/"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # highlight
    hl_p = sub.add_parser(
        "highlight", help="Highlight every occurrence of a selection in a file"
    )
    hl_p.add_argument("file", type=Path, help="HTML file to annotate")
    hl_p.add_argument("--select", required=True, help="Text to select")
    hl_p.add_argument(
        "--occurrence",
        type=int,
        default=0,
        help="Which occurrence of the text to select (default: 0)",
    )
    hl_p.add_argument(
        "--options", default=None, help="Highlighter options as a JSON object"
    )
    hl_p.add_argument(
        "--output", type=Path, default=None, help="Write the result here"
    )

    # features
    sub.add_parser("features", help="List built-in features")

    return parser


async def _cmd_highlight(
    file: Path,
    text: str,
    *,
    occurrence: int = 0,
    options: str | None = None,
    output: Path | None = None,
    console: Console | None = None,
) -> int:
    """Annotate *file* and print (or write) the result.

    Returns:
        Process exit code.
    """
    from talfred.api import Runtime
    from talfred.dom.page import Page
    from talfred.features.selection_highlighter import SelectionHighlighter

    con = console or globals()["console"]

    if not file.is_file():
        con.print(f"[red]Error:[/] no such file: {file}")
        return 1

    page = Page(file.read_text(encoding="utf-8"), url=file.resolve().as_uri())
    runtime = Runtime(page)
    feature = runtime.register_feature(SelectionHighlighter)
    assert isinstance(feature, SelectionHighlighter)

    if options is not None and not await feature.validate(options):
        con.print("[red]Error:[/] --options is not a valid highlighter configuration")
        return 1

    setting: dict[str, object] = {"enabled": True}
    if options is not None:
        setting["value"] = options
    await runtime.reconcile({feature.name: setting})

    try:
        page.select(text, occurrence)
    except LookupError as exc:
        con.print(f"[red]Error:[/] {exc}")
        return 1
    # Highlight now rather than after the quiet period.
    feature.listener.cancel()
    count = feature.highlight()

    result = page.to_html()
    if output is not None:
        output.write_text(result, encoding="utf-8")
        con.print(f"[green]{count} highlight(s)[/] written to {output}")
    else:
        con.print(result, markup=False, highlight=False, soft_wrap=True)
        con.print(f"[dim]{count} highlight(s)[/]", highlight=False)

    return 0


def _cmd_features(*, console: Console | None = None) -> None:
    """List built-in features as a Rich table."""
    from talfred.features import BUILTIN_FEATURES

    con = console or globals()["console"]

    table = Table(title="Features")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Default")
    table.add_column("Description")

    for feature_cls in BUILTIN_FEATURES:
        table.add_row(
            feature_cls.name,
            feature_cls.kind.value,
            "[green]on[/]" if feature_cls.default_enabled else "off",
            feature_cls.description,
        )

    con.print(table)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``talfred`` command."""
    from talfred import _setup_logging
    from talfred.config import get_settings

    parser = _build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    settings = get_settings()
    if args.verbose or settings.app.debug:
        _setup_logging(settings.app.log_dir, debug=True)

    match args.command:
        case "highlight":
            sys.exit(
                asyncio.run(
                    _cmd_highlight(
                        args.file,
                        args.select,
                        occurrence=args.occurrence,
                        options=args.options,
                        output=args.output,
                    )
                )
            )
        case "features":
            _cmd_features()
