from __future__ import annotations

import argparse
import logging
from datetime import date

from sqlalchemy import select

from .auth_models import User
from .auth_service import reset_password
from .config import HOST, PORT
from .db import db_session
from .errors import ServiceError
from .logging_setup import setup_logging
from .seed import seed_base
from .services import init_db
from .services.companies import list_companies
from .services.reminders import send_daily_reminders
from .services.scheduling import cleanup_cancelled

log = logging.getLogger(__name__)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    created = seed_base()
    print("DB initialized, system administrator created." if created else "DB initialized, seed already present.")


def cmd_create_admin(args: argparse.Namespace) -> None:
    created = seed_base(username=args.username, password=args.password, email=args.email)
    print(f"Administrator '{args.username}' created." if created else f"User '{args.username}' already exists.")


def cmd_reset_password(args: argparse.Namespace) -> None:
    reset_password(args.username, args.password, force_change=not args.no_force_change)
    print(f"Password of '{args.username}' reset.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "companies":
        for c in list_companies():
            state = "active" if c["is_active"] else "inactive"
            print(f"{c['id']} | {c['name']} | {c['email']} | {state}")
    elif args.entity == "users":
        with db_session() as s:
            q = select(User).order_by(User.company_id, User.username)
            if args.company_id is not None:
                q = q.where(User.company_id == args.company_id)
            for u in s.scalars(q):
                print(f"{u.id} | {u.username} | {u.role} | company {u.company_id or '-'} | {'active' if u.is_active else 'inactive'}")


def cmd_send_reminders(args: argparse.Namespace) -> None:
    """
    Daily WhatsApp reminders, to be started by cron at 08:00 clinic time:
    - reads tomorrow's scheduled appointments of every company
    - sends one message per patient with a phone
    """
    day = date.fromisoformat(args.day) if args.day else None
    run = send_daily_reminders(day=day, delay_seconds=args.delay)
    print(f"Reminders for {run.day}: {run.found} found, {run.sent} sent, {run.failed} failed.")


def cmd_cleanup_cancelled(args: argparse.Namespace) -> None:
    count = cleanup_cancelled(args.company_id)
    print(f"{count} cancelled appointments removed.")


def cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("odontosync.api_main:app", host=args.host, port=args.port, reload=args.reload)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="odontosync", description="OdontoSync administration CLI")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING...")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the DB and load the seed")
    p_init.set_defaults(func=cmd_init)

    p_admin = sub.add_parser("create-admin", help="Create a system administrator (no company)")
    p_admin.add_argument("--username", required=True)
    p_admin.add_argument("--password", required=True)
    p_admin.add_argument("--email", required=True)
    p_admin.set_defaults(func=cmd_create_admin)

    p_reset = sub.add_parser("reset-password", help="Reset a user's password")
    p_reset.add_argument("--username", required=True)
    p_reset.add_argument("--password", required=True)
    p_reset.add_argument("--no-force-change", action="store_true", help="Do NOT ask for a new password at next login")
    p_reset.set_defaults(func=cmd_reset_password)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["companies", "users"])
    p_list.add_argument("--company-id", type=int, default=None)
    p_list.set_defaults(func=cmd_list)

    p_rem = sub.add_parser("send-reminders", help="Send tomorrow's WhatsApp reminders")
    p_rem.add_argument("--day", default=None, help="ISO date, default: tomorrow")
    p_rem.add_argument("--delay", type=float, default=1.0, help="Seconds between messages")
    p_rem.set_defaults(func=cmd_send_reminders)

    p_clean = sub.add_parser("cleanup-cancelled", help="Delete cancelled appointments")
    p_clean.add_argument("--company-id", type=int, default=None, help="Default: every company")
    p_clean.set_defaults(func=cmd_cleanup_cancelled)

    p_serve = sub.add_parser("serve", help="Run the API with uvicorn")
    p_serve.add_argument("--host", default=HOST)
    p_serve.add_argument("--port", type=int, default=PORT)
    p_serve.add_argument("--reload", action="store_true")
    p_serve.set_defaults(func=cmd_serve)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.log_level:
        setup_logging(args.log_level.upper())
    else:
        setup_logging()
    init_db()  # guarantees the tables
    try:
        args.func(args)
    except ServiceError as e:
        print(f"Error: {e.message}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
