"""CLI entry point for meetgrid."""

from __future__ import annotations

import argparse
import asyncio
import logging
import shutil
import sys
import uuid
from pathlib import Path
from zoneinfo import ZoneInfo

from . import __version__

MINIMAL_CONFIG = """\
availability:
  slot_minutes: 30
  timezone: "UTC"
  active_hours_start: "09:00"
  active_hours_end: "02:00"
  max_recommendations: 3

calendar:
  provider: "google"
  credentials_path: "credentials.json"
  token_path: "token.json"
  sync_range_months: 2

storage:
  database_path: "meetgrid.db"

web:
  host: "127.0.0.1"
  port: 8080
  api_key: "${MEETGRID_API_KEY}"
"""


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def _build_service(config):
    from .calendar.google_calendar import GoogleCalendarProvider
    from .core.service import SchedulingService
    from .database import Database

    db = Database(config.storage.database_path)
    db.connect()
    # One OAuth token per install, so every uid syncs through the same account
    return SchedulingService(
        config, db, provider_factory=lambda uid: GoogleCalendarProvider(config.calendar)
    )


def cmd_init(args: argparse.Namespace) -> None:
    """Write a starter config.yaml in the current directory."""
    config_dest = Path("config.yaml")
    pkg_dir = Path(__file__).parent.parent.parent  # src/meetgrid -> project root
    config_src = pkg_dir / "config.example.yaml"

    if config_dest.exists() and not args.force:
        print("config.yaml already exists. Use --force to overwrite.")
        return
    if config_src.exists():
        shutil.copy(config_src, config_dest)
    else:
        config_dest.write_text(MINIMAL_CONFIG)
    print(f"Created {config_dest}")
    print("\nNext steps:")
    print("  1. Put your Google OAuth client in credentials.json")
    print("  2. Run: meetgrid check")
    print("  3. Create a meeting: meetgrid meeting create ...")


def cmd_check(args: argparse.Namespace) -> None:
    """Check config and Google Calendar access."""
    from .config import load_config

    print(f"meetgrid v{__version__}: connection check\n")
    try:
        config = load_config(args.config)
        print(f"[OK] Config loaded from {args.config}")
    except Exception as e:
        print(f"[FAIL] Config: {e}")
        sys.exit(1)

    try:
        from .calendar.google_auth import get_google_credentials
        get_google_credentials(config.calendar.credentials_path, config.calendar.token_path)
        print("[OK] Google Calendar authenticated")
    except Exception as e:
        print(f"[FAIL] Google Calendar: {e}")


def cmd_meeting_create(args: argparse.Namespace) -> None:
    from .config import load_config
    from .core.intervals import parse_instant
    from .models import Meeting

    config = load_config(args.config)
    service = _build_service(config)
    meeting = Meeting(
        id=args.id or uuid.uuid4().hex[:12],
        title=args.title,
        start_time=parse_instant(args.start),
        end_time=parse_instant(args.end),
        timezone=args.timezone or config.availability.timezone,
        participants=args.participants,
    )
    if meeting.end_time <= meeting.start_time:
        print("Meeting end must be after start.")
        sys.exit(1)
    service.db.save_meeting(meeting)
    print(f"Created meeting {meeting.id} with {len(meeting.participants)} participant(s)")


def cmd_sync(args: argparse.Namespace) -> None:
    from .config import load_config

    _setup_logging(args.verbose)
    config = load_config(args.config)
    service = _build_service(config)

    result = asyncio.run(service.sync_user_calendars(args.uid, args.start, args.end))
    print(
        f"Synced {result.event_count} event(s) from {len(result.calendars)} calendar(s) "
        f"({result.range_start:%Y-%m-%d} to {result.range_end:%Y-%m-%d})"
    )
    print(f"Refreshed availability in {result.meetings_refreshed} meeting(s)")
    if result.refresh_error:
        print(f"[WARN] Availability refresh failed: {result.refresh_error}")


def cmd_availability(args: argparse.Namespace) -> None:
    from .config import load_config

    config = load_config(args.config)
    service = _build_service(config)
    tz = ZoneInfo(config.availability.timezone)

    view = asyncio.run(service.get_availability(args.meeting))
    if not view.has_data:
        print("Nobody has shared availability yet.")
    total = len(view.participants)
    for slot in view.slots:
        if args.optimal and not slot.is_optimal:
            continue
        start = slot.start_time.astimezone(tz)
        bar = "#" * slot.available_count + "." * (total - slot.available_count)
        marker = " *" if slot.is_optimal else ""
        print(f"  {start:%a %m-%d %H:%M}  {bar}  {slot.available_count}/{total}{marker}")
    if view.no_response:
        print(f"\nNo response: {', '.join(view.no_response)}")


def cmd_recommend(args: argparse.Namespace) -> None:
    from .config import load_config

    config = load_config(args.config)
    service = _build_service(config)
    result = asyncio.run(service.get_recommendations(args.meeting, args.duration, tz=args.tz or None))
    if not result.ok:
        print(f"No recommendation: {result.error.value}")
        sys.exit(2)
    tz = ZoneInfo(args.tz or config.availability.timezone)
    for i, window in enumerate(result.windows, 1):
        local = window.start_time.astimezone(tz)
        end = window.end_time.astimezone(tz)
        print(
            f"  {i}. {local:%A, %B %d %H:%M}-{end:%H:%M} "
            f"({window.available_count} available)"
        )


def cmd_events(args: argparse.Namespace) -> None:
    """List a user's stored events for one month or a time range."""
    from .config import load_config

    config = load_config(args.config)
    service = _build_service(config)
    tz = ZoneInfo(config.availability.timezone)

    calendars = {c.id: c for c in service.db.get_calendars(args.uid)}
    if not calendars:
        print(f"No calendars stored for {args.uid}. Run: meetgrid sync --uid {args.uid}")
        return
    if args.month:
        events = asyncio.run(service.get_month_events(args.uid, args.month))
    elif args.start and args.end:
        events = asyncio.run(service.get_events(args.uid, args.start, args.end))
    else:
        print("Give --month, or both --start and --end.")
        sys.exit(1)

    for event in sorted(events, key=lambda e: e.start_time):
        start = event.start_time.astimezone(tz)
        end = event.end_time.astimezone(tz)
        calendar = calendars.get(event.calendar_id)
        label = calendar.title if calendar else event.calendar_id
        when = f"{start:%a %m-%d}  all day" if event.is_all_day else f"{start:%a %m-%d %H:%M}-{end:%H:%M}"
        free = "" if event.is_busy else " (free)"
        print(f"  {when}  {event.title}  [{label}]{free}")
    print(f"\n{len(events)} event(s)")


def cmd_serve(args: argparse.Namespace) -> None:
    """Run the HTTP API."""
    from .config import load_config
    from .web import create_app

    _setup_logging(args.verbose)
    config = load_config(args.config)
    service = _build_service(config)
    app = create_app(service, config.web)

    try:
        import uvicorn
    except ImportError:
        print("uvicorn not installed. Run: pip install meetgrid[web]")
        sys.exit(1)
    uvicorn.run(app, host=config.web.host, port=config.web.port, log_level="info")


def main():
    parser = argparse.ArgumentParser(
        prog="meetgrid",
        description="Find meeting times that work for the whole group",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init", help="Initialize configuration")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing files")

    check_parser = subparsers.add_parser("check", help="Check config and calendar access")
    check_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")

    meeting_parser = subparsers.add_parser("meeting", help="Manage meetings")
    meeting_sub = meeting_parser.add_subparsers(dest="meeting_command")
    create_parser = meeting_sub.add_parser("create", help="Create a meeting")
    create_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    create_parser.add_argument("--id", default="", help="Meeting id (random if omitted)")
    create_parser.add_argument("--title", required=True)
    create_parser.add_argument("--start", required=True, help="ISO-8601 with offset")
    create_parser.add_argument("--end", required=True, help="ISO-8601 with offset")
    create_parser.add_argument("--timezone", default="", help="IANA timezone")
    create_parser.add_argument("-p", "--participants", nargs="+", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync a user's calendars")
    sync_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    sync_parser.add_argument("--uid", required=True, help="User id")
    sync_parser.add_argument("--start", default=None, help="ISO-8601 range start")
    sync_parser.add_argument("--end", default=None, help="ISO-8601 range end")
    sync_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    avail_parser = subparsers.add_parser("availability", help="Show a meeting's availability grid")
    avail_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    avail_parser.add_argument("-m", "--meeting", required=True, help="Meeting id")
    avail_parser.add_argument("--optimal", action="store_true", help="Only slots everyone can make")

    rec_parser = subparsers.add_parser("recommend", help="Suggest meeting windows")
    rec_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    rec_parser.add_argument("-m", "--meeting", required=True, help="Meeting id")
    rec_parser.add_argument("-d", "--duration", type=int, default=60, help="Minutes")
    rec_parser.add_argument("--tz", default="", help="Judge active hours in this IANA timezone")

    events_parser = subparsers.add_parser("events", help="List a user's synced events")
    events_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    events_parser.add_argument("--uid", required=True, help="User id")
    events_parser.add_argument("--month", default="", help="Bucket month, YYYY-MM")
    events_parser.add_argument("--start", default=None, help="ISO-8601 range start")
    events_parser.add_argument("--end", default=None, help="ISO-8601 range end")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("-c", "--config", default="config.yaml", help="Config file path")
    serve_parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)
    if args.command == "meeting":
        if args.meeting_command != "create":
            meeting_parser.print_help()
            sys.exit(0)
        cmd_meeting_create(args)
        return

    commands = {
        "init": cmd_init,
        "check": cmd_check,
        "sync": cmd_sync,
        "availability": cmd_availability,
        "recommend": cmd_recommend,
        "events": cmd_events,
        "serve": cmd_serve,
    }
    commands[args.command](args)
