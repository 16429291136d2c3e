from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import UTC, datetime, timedelta
from signal import SIGINT, signal
from typing import TYPE_CHECKING, cast

from dotenv import load_dotenv

from bookingsync.app import (
    connect_calendly_project,
    detect_calendly_gaps,
    refresh_calendly_statuses,
)
from bookingsync.config import configure_logging, require_env_vars
from bookingsync.domain.time_windows import TimeWindow
from bookingsync.ui.trigger import handle_sync_trigger, handle_webhook

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from types import FrameType

log = logging.getLogger(__name__)

TOKEN_ENV_VAR = "CALENDLY_ACCESS_TOKEN"


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile Calendly bookings into the local store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Run an incremental sync")
    sync.add_argument("--project-id", type=str, help="Only sync this project")
    sync.add_argument(
        "--start",
        type=str,
        help="ISO-8601 date or timestamp marking the inclusive start of the window",
    )
    sync.add_argument(
        "--end",
        type=str,
        help="ISO-8601 date or timestamp marking the exclusive end of the window",
    )
    sync.add_argument(
        "--lookback-hours",
        type=float,
        help="Relative lookback window in hours (overrides start if larger)",
    )
    sync.add_argument(
        "--reason",
        type=str,
        default=None,
        help="Trigger reason: incremental, manual, gap_fill, deep, webhook, scheduled",
    )
    sync.add_argument(
        "--payload",
        type=str,
        help="JSON trigger body; replaces the other sync options",
    )

    refresh = subparsers.add_parser(
        "refresh-status", help="Re-check past bookings that are still active"
    )
    refresh.add_argument("--project-id", type=str, required=True)

    gaps = subparsers.add_parser("detect-gaps", help="Report projects whose data looks stale")
    gaps.add_argument("--project-id", type=str, help="Only inspect this project")

    webhook = subparsers.add_parser(
        "webhook", help="Apply a Calendly invitee notification to the local store"
    )
    webhook.add_argument("--payload", type=str, required=True, help="JSON notification body")
    webhook.add_argument("--project-id", type=str, help="Only apply it to this project")

    connect = subparsers.add_parser("connect", help="Store a project's Calendly access token")
    connect.add_argument("--project-id", type=str, required=True)
    connect.add_argument(
        "--timezone",
        type=str,
        default="UTC",
        help="IANA timezone used for the project's day boundaries (default: %(default)s)",
    )
    connect.add_argument(
        "--expires-at",
        type=str,
        help="ISO-8601 timestamp after which the token is no longer used",
    )

    return parser.parse_args(list(argv))


def _parse_iso_datetime(value: str) -> datetime:
    try:
        normalized = value.strip()
        if normalized.endswith("Z"):
            normalized = normalized[:-1] + "+00:00"
        dt = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Invalid ISO timestamp: {value}") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _load_json_object(raw: str, *, option: str) -> dict[str, object]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid {option} JSON: {exc.msg}") from exc
    if not isinstance(parsed, dict):
        raise ValueError(f"{option} must be a JSON object")
    return cast("dict[str, object]", parsed)


def _build_trigger_body(
    args: argparse.Namespace,
    *,
    now_provider: Callable[[], datetime] = _utcnow,
) -> dict[str, object]:
    if args.payload:
        return _load_json_object(args.payload, option="--payload")

    body: dict[str, object] = {}
    if args.project_id:
        body["projectId"] = args.project_id
    if args.reason:
        body["triggerReason"] = args.reason

    if args.lookback_hours is not None:
        if args.lookback_hours < 0:
            raise ValueError("Lookback hours must be non-negative")
        window = TimeWindow(
            start=_parse_iso_datetime(args.start) if args.start else None,
            end=_parse_iso_datetime(args.end) if args.end else None,
            lookback=timedelta(hours=args.lookback_hours),
        )
        start, end = window.resolve(clock=now_provider)
        body["startDate"] = start.isoformat() if start else None
        body["endDate"] = end.isoformat() if end else None
        return body

    # Plain dates and naive timestamps are read in each project's timezone.
    if args.start:
        body["startDate"] = args.start
    if args.end:
        body["endDate"] = args.end
    return body


def _print_json(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, default=str) + "\n")


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    configure_logging()
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        body: dict[str, object] | None = None
        if parsed_args.command == "sync":
            body = _build_trigger_body(parsed_args)
        elif parsed_args.command == "webhook":
            body = _load_json_object(parsed_args.payload, option="--payload")
        expires_at = (
            _parse_iso_datetime(parsed_args.expires_at)
            if parsed_args.command == "connect" and parsed_args.expires_at
            else None
        )
    except ValueError:
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "sync":
            response = handle_sync_trigger(body)
            _print_json(response)
            if not response.get("success"):
                sys.exit(1)
        elif parsed_args.command == "webhook":
            response = handle_webhook(body, project_id=parsed_args.project_id)
            _print_json(response)
            if not response.get("success"):
                sys.exit(1)
        elif parsed_args.command == "refresh-status":
            result = refresh_calendly_statuses(parsed_args.project_id)
            _print_json(result.to_response())
        elif parsed_args.command == "detect-gaps":
            reports = detect_calendly_gaps(parsed_args.project_id)
            _print_json(
                {
                    "success": True,
                    "projectsAnalyzed": len(reports),
                    "projects": [report.to_dict() for report in reports],
                }
            )
        elif parsed_args.command == "connect":
            token = require_env_vars([TOKEN_ENV_VAR])[TOKEN_ENV_VAR]
            integration = connect_calendly_project(
                parsed_args.project_id,
                access_token=token,
                timezone=parsed_args.timezone,
                expires_at=expires_at,
            )
            log.info("Stored Calendly token for project %s", integration.project_id)
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
