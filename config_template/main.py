"""
Command line entry point.

    config-template render CONFIG [--states FILE] [--user NAME] [--globals FILE] [--log-level L] [--log-file F]
    config-template check CONFIG --old FILE --new FILE [--log-level L] [--log-file F]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import yaml
from rich.console import Console
from rich.markup import escape

from config_template import __version__
from config_template.config.logging_config import setup_logging
from config_template.engine.template_engine import PassthroughElementFactory, TemplateEngine
from config_template.system.errors import ConfigurationError
from config_template.system.models import EngineSettings

logger = logging.getLogger(__name__)

console = Console()
error_console = Console(stderr=True)


def load_document(path: Optional[str]) -> Any:
    """
    Loads a JSON or YAML document. YAML is a superset of JSON, so every
    file goes through the YAML loader.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    if path is None:
        return None
    try:
        text = Path(path).read_text(encoding="utf-8")
        return yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot load '{path}'", error_details=str(e)) from e


def _build_engine(args: argparse.Namespace) -> TemplateEngine:
    engine = TemplateEngine(settings=EngineSettings.from_env(), helpers=PassthroughElementFactory())
    globals_doc = load_document(getattr(args, "globals", None)) or {}
    engine.set_global_variables(
        variables=globals_doc.get("variables"),
        static_variables=globals_doc.get("staticVariables"),
    )
    engine.set_config(load_document(args.config))
    return engine


def command_render(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    engine.update_context(states=load_document(args.states) or {}, user=args.user)
    result = asyncio.run(engine.render_async())
    payload = {"kind": result.kind.value, "config": result.config, "style": result.style}
    if result.element_style:
        payload["element_style"] = result.element_style
    console.print_json(json.dumps(payload, default=str))
    return 0


def command_check(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    engine.update_context(states=load_document(args.old) or {}, user=args.user)
    asyncio.run(engine.render_async())
    changed = engine.update_context(states=load_document(args.new) or {}, user=args.user)
    console.print_json(json.dumps({"changed": changed}))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="config-template",
        description="Evaluate embedded expressions in a templated configuration."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    common.add_argument("--log-file", default=None, help="Write logs to this file instead of stderr")

    subparsers = parser.add_subparsers(dest="command", required=True)

    render = subparsers.add_parser("render", parents=[common], help="Evaluate a configuration and print the result")
    render.add_argument("config", help="Configuration file (JSON or YAML)")
    render.add_argument("--states", default=None, help="Entity states file (JSON or YAML)")
    render.add_argument("--user", default=None, help="Current user name")
    render.add_argument("--globals", default=None, help="Global variables file with 'variables'/'staticVariables'")
    render.set_defaults(func=command_render)

    check = subparsers.add_parser("check", parents=[common], help="Report whether a state change is observable")
    check.add_argument("config", help="Configuration file (JSON or YAML)")
    check.add_argument("--old", required=True, help="Previous entity states file")
    check.add_argument("--new", required=True, help="New entity states file")
    check.add_argument("--user", default=None, help="Current user name")
    check.add_argument("--globals", default=None, help="Global variables file with 'variables'/'staticVariables'")
    check.set_defaults(func=command_check)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    logger.info(f"config-template {__version__}")

    try:
        return args.func(args)
    except ConfigurationError as e:
        error_console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
