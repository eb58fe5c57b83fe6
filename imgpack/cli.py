from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from .config import ImageConfig, RunOptions, fast_config, load_config
from .errors import ConfigError
from .optimize import optimize
from .report import format_issues, format_summary
from .state import RunContext


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="imgpack",
        description="Optimise the <img> tags of a built static site in place.",
    )
    parser.add_argument("dir", help="Directory holding the generated HTML files")
    parser.add_argument("--exclude", default=None, help="Glob of HTML files to leave alone (e.g. 'blog/**')")
    parser.add_argument("--nowrite", action="store_true", help="Run every step but write nothing to disk")
    parser.add_argument("--fast", action="store_true", help="Skip compression effort, embedding and srcset")
    parser.add_argument("--config", default=None, help="JSON file overriding the image options")
    parser.add_argument("--fail", action="store_true", help="Exit with status 1 when any issue is reported")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    root = Path(args.dir).resolve()
    if not root.is_dir():
        print(f"Directory not found: {root}", file=sys.stderr)
        return 2

    try:
        config = load_config(Path(args.config)) if args.config else ImageConfig()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    if args.fast:
        config = fast_config(config)

    ctx = RunContext(RunOptions(root=root, nowrite=args.nowrite, exclude=args.exclude), config)
    files = optimize(ctx)

    print(f"Processed {len(files)} HTML file(s){' (dry-run)' if args.nowrite else ''}")
    for line in format_summary(ctx):
        print(line)
    if ctx.issues:
        print(f"{ctx.issue_count} issue(s)")
        for line in format_issues(ctx):
            print(line)

    if args.fail and ctx.issues:
        return 1
    return 0
