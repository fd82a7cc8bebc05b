#!/usr/bin/env python3
"""
journal_cli.py — command-line front end for the trading-journal sync client.

Sub-commands
------------
  login          Sign in and persist the session.
  logout         Drop the persisted session.
  list           One page of trade-logs, strategies, analyses or notifications.
  stats          Aggregated trade performance.
  notifications  Recent notifications and unread count.
  watch          Stay connected and print live notifications.

Quick examples
--------------
  python scripts/journal_cli.py login --email trader@example.com
  python scripts/journal_cli.py list trade-logs --page 2 --search AAPL
  python scripts/journal_cli.py list strategies --sort-by name --sort-order asc
  python scripts/journal_cli.py list notifications --unread-only
  python scripts/journal_cli.py stats
  python scripts/journal_cli.py notifications --mark-all-read
  python scripts/journal_cli.py watch
"""
from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

# ── add repo root to path so local imports work when run from any cwd ──────────
_REPO = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_REPO))

from core.auth import AuthService
from core.context import ClientContext
from core.errors import JournalClientError
from core.gateway import RequestGateway
from core.journal_api import LIST_RESOURCES, NOTIFICATIONS_PAGE_SIZE, JournalApi
from core.notifications import NotificationReconciler, NotificationState
from core.pagination import PaginatedQueryController
from core.performance import calculate_average_pnl, calculate_success_ratio
from journal_config import load_journal_environment
from logging_config import quiet_third_party_loggers
from streaming.notification_ws import LiveNotificationChannel

# ── Silence noisy third-party loggers ────────────────────────────────────────
import logging
logging.basicConfig(level=logging.ERROR)
quiet_third_party_loggers()

# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════

LINE_FILL = "─"


def _hr(width: int = 80) -> str:
    return LINE_FILL * width


def _now_utc() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _print_kv(key: str, value, width: int = 24) -> None:
    print(f"  {key:<{width}}: {value}")


def _context(args: argparse.Namespace) -> ClientContext:
    config = load_journal_environment(args.env_file)
    if args.base_url:
        config.api_base_url = args.base_url.rstrip("/")
    return ClientContext.init(config)


def _print_notification_state(state: NotificationState) -> None:
    print(f"\n{'NOTIFICATIONS':^80}")
    print(_hr())
    _print_kv("Unread", state.unread_count)
    _print_kv("Live channel", "connected" if state.connected else "offline")
    if state.last_error:
        _print_kv("Last error", state.last_error)
    for item in state.recent_items:
        marker = " " if item.is_read else "●"
        stamp = item.created_at.strftime("%Y-%m-%d %H:%M") if item.created_at else "-"
        print(f"  {marker} [{item.type.value:<8}] {stamp:<16} {item.title[:40]}")


# ═══════════════════════════════════════════════════════════════════════════════
# Argument parsing
# ═══════════════════════════════════════════════════════════════════════════════

def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="journal_cli",
        description="CLI for the trading-journal dashboard backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    p.add_argument("--env-file", default=".env")
    p.add_argument("--base-url", default=None, help="Override JOURNAL_API_BASE_URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ── login ────────────────────────────────────────────────────────────────
    lg = sub.add_parser("login", help="Sign in and persist the session")
    lg.add_argument("--email", required=True)
    lg.add_argument("--password", default=None, help="Prompted when omitted")

    sub.add_parser("logout", help="Drop the persisted session")

    # ── list ─────────────────────────────────────────────────────────────────
    ls = sub.add_parser("list", help="One page of a journal resource")
    ls.add_argument("resource", choices=sorted(LIST_RESOURCES))
    ls.add_argument("--page", type=int, default=1)
    ls.add_argument("--per-page", type=int, default=None)
    ls.add_argument("--sort-by", default="created_at")
    ls.add_argument("--sort-order", choices=("asc", "desc"), default="desc")
    ls.add_argument("--search", default="")
    ls.add_argument("--unread-only", action="store_true", help="notifications: unread items only")
    ls.add_argument("--json", dest="as_json", action="store_true")

    # ── stats ────────────────────────────────────────────────────────────────
    st = sub.add_parser("stats", help="Aggregated trade performance")
    st.add_argument("--json", dest="as_json", action="store_true")

    # ── notifications ────────────────────────────────────────────────────────
    nt = sub.add_parser("notifications", help="Recent notifications + unread count")
    nt.add_argument("--mark-read", type=int, default=None, metavar="ID")
    nt.add_argument("--mark-all-read", action="store_true")
    nt.add_argument("--delete", type=int, default=None, metavar="ID")

    sub.add_parser("watch", help="Print live notifications until interrupted")
    return p


# ═══════════════════════════════════════════════════════════════════════════════
# Commands
# ═══════════════════════════════════════════════════════════════════════════════

async def _login(args: argparse.Namespace) -> int:
    context = _context(args)
    password = args.password or getpass.getpass("Password: ")
    async with RequestGateway(context) as gateway:
        user = await AuthService(context, gateway).login(args.email, password)
    print(f"[{_now_utc()}]  signed in as {user.full_name or user.email} (id={user.id})")
    return 0


async def _logout(args: argparse.Namespace) -> int:
    context = _context(args)
    async with RequestGateway(context) as gateway:
        removed = AuthService(context, gateway).logout()
    print("Signed out." if removed else "No active session.")
    return 0


async def _list(args: argparse.Namespace) -> int:
    context = _context(args)
    default_size = NOTIFICATIONS_PAGE_SIZE if args.resource == "notifications" else context.config.default_page_size
    async with RequestGateway(context) as gateway:
        controller: PaginatedQueryController[dict] = PaginatedQueryController(
            gateway,
            LIST_RESOURCES[args.resource],
            page_size=args.per_page or default_size,
            sort_key=args.sort_by,
            sort_dir=args.sort_order,
            debounce_seconds=0,
            page=args.page,
            search=args.search,
            filters={"unread_only": True} if args.unread_only else None,
        )
        page = await controller.refresh()
        controller.close()

    if controller.error:
        print(controller.error, file=sys.stderr)
        return 2 if controller.login_required else 1

    if args.as_json:
        print(json.dumps({
            "items": page.items,
            "page": page.page,
            "pages": page.total_pages,
            "total": page.total_items,
        }, indent=2, default=str))
        return 0

    print(f"\n{args.resource.upper():^80}")
    print(_hr())
    for item in page.items:
        label = item.get("symbol") or item.get("name") or item.get("title") or ""
        print(f"  #{item.get('id', '?'):<6} {str(label)[:40]:<40} {item.get('created_at', '')}")
    print(_hr())
    print(f"  page {page.page}/{page.total_pages}  ({page.total_items} total)")
    return 0


async def _stats(args: argparse.Namespace) -> int:
    context = _context(args)
    async with RequestGateway(context) as gateway:
        stats = await JournalApi(gateway).trade_stats()

    if args.as_json:
        print(stats.model_dump_json(indent=2))
        return 0

    decided = stats.success + stats.loss
    print(f"\n{'TRADE PERFORMANCE':^80}")
    print(_hr())
    _print_kv("Total trades", stats.total_trades)
    _print_kv("Win rate", f"{stats.win_rate:.1f}%")
    _print_kv("Total P&L", f"{stats.total_pnl:+.2f}")
    _print_kv("Average P&L", f"{calculate_average_pnl(stats.total_pnl, stats.total_trades):+.2f}")
    _print_kv("Success / loss", f"{stats.success} / {stats.loss}")
    _print_kv("Success ratio", f"{calculate_success_ratio(stats.success, decided):.1f}%")
    return 0


async def _notifications(args: argparse.Namespace) -> int:
    context = _context(args)
    async with RequestGateway(context) as gateway:
        reconciler = NotificationReconciler(
            JournalApi(gateway), limit=context.config.notification_limit, session=context.session
        )
        await reconciler.refresh()
        if args.mark_read is not None:
            await reconciler.mark_read(args.mark_read)
        if args.delete is not None:
            await reconciler.delete(args.delete)
        if args.mark_all_read:
            reconciler.mark_all_read()
            await reconciler.wait_idle()
    _print_notification_state(reconciler.state)
    return 1 if reconciler.state.last_error else 0


async def _watch(args: argparse.Namespace) -> int:
    context = _context(args)
    async with RequestGateway(context) as gateway:
        reconciler = NotificationReconciler(
            JournalApi(gateway), limit=context.config.notification_limit, session=context.session
        )
        # The first successful snapshot confirms the backend is reachable.
        await reconciler.refresh()

        channel = LiveNotificationChannel(context)
        channel.subscribe(reconciler.handle)
        reconciler.subscribe(_print_notification_state)
        if not channel.start():
            print(reconciler.state.last_error or "Cannot open live channel.", file=sys.stderr)
            return 1
        try:
            await channel.wait_closed()
        except asyncio.CancelledError:
            pass
        finally:
            await channel.close()
        if channel.offline and channel.last_error:
            print(channel.last_error.message, file=sys.stderr)
            return 1
    return 0


# ═══════════════════════════════════════════════════════════════════════════════
# Entry point
# ═══════════════════════════════════════════════════════════════════════════════

_COMMANDS = {
    "login":         _login,
    "logout":        _logout,
    "list":          _list,
    "stats":         _stats,
    "notifications": _notifications,
    "watch":         _watch,
}


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    fn = _COMMANDS.get(args.cmd)
    if fn is None:
        parser.print_help()
        sys.exit(1)
    try:
        code = asyncio.run(fn(args))
    except KeyboardInterrupt:
        code = 130
    except JournalClientError as exc:
        print(getattr(exc, "message", str(exc)), file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
