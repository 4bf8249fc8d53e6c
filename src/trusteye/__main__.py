"""Entry point for `python -m trusteye` and the `trusteye` CLI script."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from trusteye.models import Page
from trusteye.session import CommandResult, build_session
from trusteye.settings import RuntimeSettings
from trusteye.stages import command_placeholder

PAGE_CHOICES = [page.value for page in Page]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the TrustEye campaign command console")
    parser.add_argument(
        "--command",
        action="append",
        default=None,
        help="Command to run non-interactively (repeatable, executed in order)",
    )
    parser.add_argument("--page", default=Page.STUDIO.value, choices=PAGE_CHOICES, help="Page the session starts on")
    parser.add_argument(
        "--state-store-root",
        type=Path,
        default=None,
        help="Directory for campaigns, receipts and the event log (overrides TRUSTEYE_STATE_STORE_ROOT)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def print_result(result: CommandResult) -> None:
    for page, messages in result.conversation_delta.items():
        for message in messages:
            if message.origin.value == "user":
                continue
            prefix = f"[{page.value}] " if message.origin.value == "system" else ""
            print(f"{prefix}{message.text}\n")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = RuntimeSettings.from_env()
        if args.state_store_root is not None:
            settings = replace(settings, state_store_root=str(args.state_store_root.resolve()))
        session = build_session(settings)
    except (OSError, ValueError, RuntimeError) as exc:
        logging.error("Unable to start session: %s", exc)
        return 1

    page = Page(args.page)
    try:
        if args.command:
            for command in args.command:
                print(f"> {command}")
                print_result(session.submit_command(command, page=page))
                page = session.context.active_page
            return 0

        print(f"TrustEye console ({page.value}). Type 'quit' to exit.")
        while True:
            try:
                line = input(f"{command_placeholder(session.campaign)}\n> ")
            except EOFError:
                return 0
            command = line.strip()
            if not command:
                continue
            if command.lower() in {"quit", "exit"}:
                return 0
            print_result(session.submit_command(command, page=page))
            page = session.context.active_page
    except KeyboardInterrupt:
        print(file=sys.stderr)
        return 130
    except Exception as exc:  # noqa: BLE001
        logging.exception("Console failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
