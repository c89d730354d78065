"""Entry point: frc [-m MB] [-r RUNTIME] COMMAND [ARGS...]

- COMMAND [ARGS...]:  run a Node/Deno/Bun command with a per-project memory limit
- info RUNTIME:       memory recommendations for a runtime
- project:            saved config for the current project
- list:               all saved project configs
- forget [PATH]:      remove the config for PATH or the current project
- cleanup --days N:   remove configs unused for N days
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from frc.config import FrcConfig, load_config
from frc.errors import USAGE_EXIT_CODE, InvalidMemory, UnknownRuntime

SUBCOMMANDS = ("info", "project", "list", "forget", "cleanup")

_EPILOG = """\
examples:
  frc -m 4096 node index.js        first run in a project, saves 4096 MB
  frc node index.js                later runs reuse the saved value
  frc -r node -m 4096 my-script    explicit runtime for an unknown command
  frc project                      show the current project's config

supported runtimes:
  Node.js: node, npm, npx, pnpm, yarn   (memory config: yes)
  Deno:    deno                         (memory config: yes)
  Bun:     bun                          (memory config: no)

If a run dies with a JavaScript heap OOM, the saved limit is raised
(max(x1.5, +2048 MB)) for the next run.
"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _memory_arg(value: str) -> int:
    try:
        mb = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"memory must be an integer number of MB, got {value!r}")
    if mb <= 0:
        raise argparse.ArgumentTypeError(f"memory must be positive, got {mb}")
    return mb


def build_run_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="frc",
        description="Run JavaScript runtimes with a per-project memory limit.",
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument(
        "-m", "--memory", type=_memory_arg, metavar="MB",
        help="memory limit in MB (saved for this project)",
    )
    p.add_argument(
        "-r", "--runtime", metavar="RUNTIME",
        help="runtime to use (node, deno, bun) when COMMAND is not one",
    )
    p.add_argument("command", nargs="?", metavar="COMMAND", help="node, deno, bun, npm, npx, pnpm, yarn")
    p.add_argument("args", nargs=argparse.REMAINDER, metavar="ARGS", help="arguments for COMMAND")
    return p


def build_subcommand_parser(config: FrcConfig) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="frc")
    sub = p.add_subparsers(dest="subcommand", required=True)

    info = sub.add_parser("info", help="show memory recommendations for a runtime")
    info.add_argument("runtime", help="node, deno or bun")

    sub.add_parser("project", help="show the current project's saved config")
    sub.add_parser("list", help="list all saved project configs")

    forget = sub.add_parser("forget", help="remove the saved config for a project")
    forget.add_argument("path", nargs="?", help="project path (default: current project)")

    cleanup = sub.add_parser("cleanup", help="remove configs not used recently")
    cleanup.add_argument(
        "-d", "--days", type=int, default=config.cleanup_days,
        help=f"age threshold in days (default: {config.cleanup_days})",
    )
    return p


def _build_orchestrator(config: FrcConfig):
    from frc.orchestrator import Orchestrator
    from frc.store import JsonConfigStore
    from frc.supervisor import ProcessSupervisor

    store = JsonConfigStore(config.store_path)
    supervisor = ProcessSupervisor(tail_bytes=config.stderr_tail_kb * 1024)
    return Orchestrator(store, supervisor)


def _run_subcommand(argv: Sequence[str], config: FrcConfig) -> int:
    from frc.runtime import RuntimeKind

    ns = build_subcommand_parser(config).parse_args(argv)
    orchestrator = _build_orchestrator(config)

    if ns.subcommand == "info":
        return orchestrator.show_recommendations(RuntimeKind.from_command(ns.runtime))
    if ns.subcommand == "project":
        return orchestrator.show_project()
    if ns.subcommand == "list":
        return orchestrator.list_projects()
    if ns.subcommand == "forget":
        return orchestrator.forget(ns.path)
    return orchestrator.cleanup(ns.days)


def _run_command(argv: Sequence[str], config: FrcConfig) -> int:
    parser = build_run_parser()
    ns = parser.parse_args(argv)
    if not ns.command:
        parser.print_help()
        return USAGE_EXIT_CODE

    orchestrator = _build_orchestrator(config)
    return orchestrator.run(ns.command, ns.args, memory=ns.memory, runtime=ns.runtime)


def main(argv: Sequence[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    config = load_config()
    _setup_logging(config.log_level)

    try:
        if argv and argv[0] in SUBCOMMANDS:
            return _run_subcommand(argv, config)
        return _run_command(argv, config)
    except UnknownRuntime as e:
        print(f"Error: {e}", file=sys.stderr)
        print("  Use -r/--runtime to choose node, deno or bun explicitly.", file=sys.stderr)
        return USAGE_EXIT_CODE
    except InvalidMemory as e:
        from frc.recommend import recommendation_text, system_memory_mb
        from frc.runtime import RuntimeKind

        print(f"Error: {e}", file=sys.stderr)
        print(recommendation_text(RuntimeKind.NODE, system_memory_mb()), file=sys.stderr)
        return USAGE_EXIT_CODE
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
