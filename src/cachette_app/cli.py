"""cachette command line.

Usage:
    cachette "What is the capital of France?"          # query, default model
    cachette query "Explain quantum computing" -m org/model
    cachette structured "List 3 colors" --schema schema.json
    cachette download -m Qwen/Qwen2.5-0.5B-Instruct-GGUF --force
    cachette list --json
    cachette info -m ~/Models/Qwen2.5-0.5B
    cachette delete -m org/model

A first argument that is not a subcommand is treated as a query prompt.
Errors go to stderr with exit status 1.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Sequence

from cachette import __version__
from cachette.config import ConfigError, get_config
from cachette.llm.exceptions import CachetteError
from cachette.llm.types import QueryRequest
from cachette.logs import configure_logging
from cachette.runtime import Runtime

SUBCOMMANDS = ("download", "query", "structured", "list", "info", "delete")


def _print_json(data: Any, sort_keys: bool = False) -> None:
    print(json.dumps(data, indent=2, sort_keys=sort_keys, ensure_ascii=False))


def _cmd_download(rt: Runtime, args: argparse.Namespace) -> int:
    root = Path(args.destination).expanduser() if args.destination \
        else rt.config.models_dir()
    show = not args.quiet
    if show:
        print(f"Downloading {args.model} to {root}...")

    def progress(fraction: float) -> None:
        if show:
            print(f"\r{int(fraction * 100)}%", end="", flush=True)

    rt.acquire(
        args.model, destination_root=root, force=args.force,
        on_progress=progress,
    )
    if show:
        print("\nDownload complete.")
    return 0


def _cmd_query(rt: Runtime, args: argparse.Namespace) -> int:
    request = QueryRequest(
        prompt=args.prompt,
        system_prompt=args.system,
        temperature=(
            rt.config.llm.temperature if args.temperature is None
            else args.temperature
        ),
        token_budget=args.max_tokens,
    )
    result = rt.respond(request, args.model, args.destination)
    if args.json:
        _print_json(result.to_dict(), sort_keys=True)
    else:
        print(result.response)
    return 0


def _cmd_structured(rt: Runtime, args: argparse.Namespace) -> int:
    schema = None
    if args.schema:
        try:
            schema = json.loads(Path(args.schema).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: cannot read schema {args.schema}: {e}",
                  file=sys.stderr)
            return 1
    data = rt.query_structured(
        args.prompt,
        Any,
        args.model,
        system_prompt=args.system,
        temperature=args.temperature,
        token_budget=args.max_tokens,
        download_destination=args.destination,
        retries=args.retries,
        json_schema=schema,
    )
    _print_json(data)
    return 0


def _cmd_list(rt: Runtime, args: argparse.Namespace) -> int:
    root = Path(args.path).expanduser() if args.path \
        else rt.config.models_dir()
    records = rt.list_available(root)
    if args.json:
        _print_json([r.to_dict() for r in records])
    elif not records:
        print(f"No models found in {root}")
    else:
        print(f"Downloaded models in {root}:\n")
        for r in records:
            print(f"• {r.id} ({r.formatted_size})")
    return 0


def _cmd_info(rt: Runtime, args: argparse.Namespace) -> int:
    record = rt.model_info(args.model)
    if args.json:
        _print_json(record.to_dict())
    else:
        print(f"Model: {record.id}")
        print(f"Path: {record.path}")
        print(f"Size: {record.formatted_size}")
        print(f"Downloaded: {record.acquired_at.isoformat()}")
    return 0


def _cmd_delete(rt: Runtime, args: argparse.Namespace) -> int:
    if rt.delete(args.model):
        print(f"Deleted {args.model}.")
    else:
        print(f"{args.model} is not downloaded.")
    return 0


def _add_query_options(p: argparse.ArgumentParser, default_model: str) -> None:
    p.add_argument("prompt", help="The prompt to send to the model")
    p.add_argument(
        "-m", "--model", default=default_model,
        help=f"Model path or hub id (default: {default_model})",
    )
    p.add_argument(
        "-d", "--destination", default=None,
        help="Download destination root for hub models",
    )
    p.add_argument("--temperature", type=float, default=None)
    p.add_argument(
        "--max-tokens", type=int, default=None,
        help="Token budget (default: derived from available memory)",
    )
    p.add_argument("--system", default=None, help="System prompt")


def build_parser(default_model: str) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="cachette",
        description="Local model cache + on-device inference",
    )
    ap.add_argument("--version", action="version", version=__version__)
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("download", help="Download a model from the hub")
    p.add_argument("-m", "--model", required=True, help="Hub model id")
    p.add_argument("-d", "--destination", default=None)
    p.add_argument(
        "--force", action="store_true",
        help="Re-download even if the model already exists locally",
    )
    p.add_argument("-q", "--quiet", action="store_true",
                   help="Suppress progress output")
    p.set_defaults(handler=_cmd_download)

    p = sub.add_parser("query", help="Query a model with a prompt")
    _add_query_options(p, default_model)
    p.add_argument("--json", action="store_true",
                   help="Output response as JSON with metadata")
    p.set_defaults(handler=_cmd_query)

    p = sub.add_parser("structured", help="Query for a JSON answer")
    _add_query_options(p, default_model)
    p.add_argument("--schema", default=None,
                   help="Path to a JSON Schema file the answer must follow")
    p.add_argument("--retries", type=int, default=0)
    p.set_defaults(handler=_cmd_structured)

    p = sub.add_parser("list", help="List downloaded models")
    p.add_argument("-p", "--path", default=None,
                   help="Models directory to scan")
    p.add_argument("--json", action="store_true")
    p.set_defaults(handler=_cmd_list)

    p = sub.add_parser("info", help="Show details about a model")
    p.add_argument("-m", "--model", required=True,
                   help="Model path or hub id")
    p.add_argument("--json", action="store_true")
    p.set_defaults(handler=_cmd_info)

    p = sub.add_parser("delete", help="Remove a downloaded model")
    p.add_argument("-m", "--model", required=True, help="Hub model id")
    p.set_defaults(handler=_cmd_delete)
    return ap


def _normalize_argv(argv: Sequence[str]) -> list[str]:
    argv = list(argv)
    if argv and argv[0] not in SUBCOMMANDS and not argv[0].startswith("-"):
        return ["query", *argv]
    return argv


def main(
    argv: Sequence[str] | None = None,
    runtime_factory: Callable[[], Runtime] | None = None,
) -> int:
    try:
        cfg = get_config()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    configure_logging(cfg.logging)
    args = build_parser(cfg.llm.default_model).parse_args(
        _normalize_argv(sys.argv[1:] if argv is None else argv)
    )
    owned = runtime_factory is None
    rt = Runtime.from_config(cfg) if owned else runtime_factory()
    try:
        return args.handler(rt, args)
    except CachetteError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if owned:
            rt.close()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
