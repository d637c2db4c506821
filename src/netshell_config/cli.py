"""Command-line interface for NetShell Config."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Tuple

import yaml

from . import __version__, SSH_PORT
from .dispatcher import ConfigDispatcher, group_by_node
from .exceptions import RenderError
from .templates import TemplateRenderer, load_inventory
from .types import ConfigSnippet, TransportOptions

logger = logging.getLogger("netshell_config.cli")

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"


def setup_logging(debug: bool = False) -> None:
    """Route library logs to stderr; one line per record, safe across threads."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )
    # paramiko's transport-level logs drown out the device output
    logging.getLogger("paramiko").setLevel(logging.WARNING)


def render_all(renderer: TemplateRenderer, inventory: str) -> Tuple[List[ConfigSnippet], int]:
    """Render every node, then every link; returns (snippets, number of render errors).

    Link snippets follow the node snippets, so each device receives its
    base configuration before its link configuration.
    """
    lab = load_inventory(inventory)
    snippets: List[ConfigSnippet] = []
    errors = 0
    for node in lab.nodes:
        try:
            snippets.extend(renderer.render_node(node))
        except RenderError as e:
            logger.error("[RENDER] %s", e)
            errors += 1
    for i, link in enumerate(lab.links):
        try:
            snippets.extend(renderer.render_link(link))
        except RenderError as e:
            logger.error("[RENDER] link %d (%s): %s", i, link, e)
            errors += 1
    return snippets, errors


def command_config(args: argparse.Namespace) -> int:
    """Render templates and push them to every device."""
    templates = [t.strip() for t in args.templates.split(",") if t.strip()] if args.templates else None
    renderer = TemplateRenderer(args.path, templates)

    try:
        snippets, render_errors = render_all(renderer, args.inventory)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: cannot read inventory {args.inventory}: {e}", file=sys.stderr)
        return 1

    if render_errors > 0:
        print(f"Error: {render_errors} render warnings", file=sys.stderr)
        return 1

    if args.print_only > 0:
        for group in group_by_node(snippets).values():
            for snippet in group:
                logger.info("[PRINT]\n%s", snippet.format(args.print_only))
        return 0

    options = TransportOptions(
        port=args.port,
        debug=args.debug,
        show_login_message=args.login_message,
    )
    dispatcher = ConfigDispatcher(options, show_progress=args.progress)
    summary = dispatcher.dispatch(snippets)

    for result in summary.failed:
        print(f"{result.node.short_name}: {result.error}", file=sys.stderr)
    return 0 if summary.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="NetShell Config - push templated configuration over device CLIs"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--debug", action="store_true", default=False,
        help="Enable debug logging, including every raw device reply",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="command", required=True)

    config_parser = subparsers.add_parser(
        "config", aliases=["conf"],
        help="Configure a lab from templates and the inventory",
    )
    config_parser.add_argument(
        "--inventory", "-t", required=True,
        help="YAML inventory with the nodes and links to configure",
    )
    config_parser.add_argument(
        "--path", default=".",
        help="Template search path (default: current directory)",
    )
    config_parser.add_argument(
        "--templates", default="",
        help="Comma-separated list of templates to apply (default: base)",
    )
    config_parser.add_argument(
        "--print-only", "-p", type=int, default=0,
        help="Print config, don't send it. Restricted to N lines",
    )
    config_parser.add_argument(
        "--login-message", action="store_true", default=False,
        help="Show the SSH login message",
    )
    config_parser.add_argument(
        "--port", type=int, default=SSH_PORT,
        help="SSH port (default: 22)",
    )
    config_parser.add_argument(
        "--progress", action="store_true", default=False,
        help="Show a progress bar of finished devices",
    )
    config_parser.set_defaults(func=command_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
