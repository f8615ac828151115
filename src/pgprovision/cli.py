from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .config import DEFAULT_CONFIG, PASSWORD_ENV, load_config
from .inventory import InventoryLoader
from .presets import postgresql17_plan
from .runner import TaskRunner
from .types import ActionResult, ActionSpec, HostConfig, Plan


class Ansi:
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    ORANGE = "\033[38;5;208m"
    RESET = "\033[0m"


def colorize(text: str, color: Optional[str]) -> str:
    if not color:
        return text
    if not sys.stdout.isatty() or os.environ.get("NO_COLOR"):
        return text
    return f"{color}{text}{Ansi.RESET}"

_last_progress_len = 0


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Install and configure PostgreSQL 17 on EL8")
    parser.add_argument(
        "plan",
        nargs="?",
        default=None,
        type=Path,
        help="Path to a TOML plan file (default: config plan, else the built-in PostgreSQL 17 plan)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Path to pgprovision config file (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help=(
            "PostgreSQL data directory for the built-in plan. The setup script "
            "initialises the PGDATA set in the postgresql-17 unit, so a non-default "
            "directory needs a matching systemd override"
        ),
    )
    parser.add_argument("--dry-run", action="store_true", help="Calculate changes without executing")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Python logging level (default: config log_level or INFO)",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(name)s - %(message)s",
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = load_config(args.config)
    except ValueError as exc:
        print(colorize(f"Config load failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1
    configure_logging(args.log_level or cfg.log_level)
    _apply_aws_env(cfg)

    try:
        plan = _load_plan(args, cfg)
    except (OSError, ValueError) as exc:
        print(colorize(f"Plan validation failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    runner = TaskRunner(plan, dry_run=args.dry_run, progress_callback=print_progress)
    try:
        results = runner.run()
    except Exception as exc:  # noqa: BLE001
        _clear_progress()
        if logging.getLogger().isEnabledFor(logging.DEBUG):
            raise
        print(colorize(f"Execution failed: {exc}", Ansi.RED), file=sys.stderr)
        return 1

    effective_level = logging.getLogger().getEffectiveLevel()
    summary = Summary()
    for result in results:
        _clear_progress()
        summary.add(result)
        if not should_display_result(result, effective_level):
            continue
        print(format_result(result))

    _clear_progress()
    print(summary.render())

    return 0 if runner.succeeded else 1


def _load_plan(args: argparse.Namespace, cfg) -> Plan:
    plan_path = args.plan or cfg.plan
    if plan_path:
        return InventoryLoader().load(plan_path)
    if cfg.admin_password is None:
        raise ValueError(
            f"no admin password configured; set postgres.admin_password in {args.config} or {PASSWORD_ENV}"
        )
    return postgresql17_plan(
        data_dir=args.data_dir or cfg.data_dir,
        admin_password=cfg.admin_password,
    )


def format_result(result: ActionResult) -> str:
    status = "changed" if result.changed else "ok"
    color: Optional[str] = Ansi.BLUE
    if result.failed and result.ignored:
        status = "ignored"
        color = Ansi.ORANGE
    elif result.failed:
        status = "failed"
        color = Ansi.RED
    elif result.changed:
        color = Ansi.GREEN
    resource = f"[{result.resource}]" if result.resource else ""
    line = f"{result.host}::{result.action}{resource} {status} - {result.details}"
    return colorize(line, color)


def should_display_result(result: ActionResult, log_level: int) -> bool:
    if result.failed or result.changed:
        return True
    return log_level <= logging.DEBUG


def print_progress(host: HostConfig, action: ActionSpec) -> None:
    global _last_progress_len
    _clear_progress()
    title = action.label or action.type
    line = f"{host.name}::{title} pending..."
    _last_progress_len = len(line)
    print(colorize(line, Ansi.YELLOW), end="\r", flush=True)


def _clear_progress() -> None:
    global _last_progress_len
    if _last_progress_len:
        print(" " * _last_progress_len, end="\r", flush=True)
        _last_progress_len = 0


def _apply_aws_env(cfg) -> None:
    if getattr(cfg, "aws_profile", None) and "AWS_PROFILE" not in os.environ:
        os.environ["AWS_PROFILE"] = cfg.aws_profile  # type: ignore[assignment]
    if getattr(cfg, "aws_region", None):
        if "AWS_REGION" not in os.environ:
            os.environ["AWS_REGION"] = cfg.aws_region  # type: ignore[assignment]
        if "AWS_DEFAULT_REGION" not in os.environ:
            os.environ["AWS_DEFAULT_REGION"] = cfg.aws_region  # type: ignore[assignment]


class Summary:
    def __init__(self) -> None:
        self.changes = 0
        self.unchanged = 0
        self.ignored = 0
        self.failures = 0

    def add(self, result: ActionResult) -> None:
        if result.failed:
            if result.ignored:
                self.ignored += 1
            else:
                self.failures += 1
            return
        if result.changed:
            self.changes += 1
        else:
            self.unchanged += 1

    def render(self) -> str:
        parts = [
            f"Changes: {self.changes}",
            f"Unchanged: {self.unchanged}",
            f"Ignored: {self.ignored}",
            f"Failures: {self.failures}",
        ]
        text = " | ".join(parts)
        color = Ansi.GREEN if self.failures == 0 else Ansi.RED
        return colorize(text, color)


if __name__ == "__main__":
    raise SystemExit(main())
