# reap_stale_orders.py
"""
Scheduled entry point for the stale-order sweep.

Run from cron / a Supabase scheduled job, e.g. every 15 minutes:

    */15 * * * *  cd /srv/campusgrub && python reap_stale_orders.py --hours 2
"""
import argparse
import logging

from campusgrub.core.config import get_settings
from campusgrub.database import session_factory
from campusgrub.repositories.order_repo import OrderRepository
from campusgrub.services.reaper_service import StaleOrderReaper


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Force stale orders to delivered")
    parser.add_argument(
        "--hours",
        type=float,
        default=settings.STALE_ORDER_THRESHOLD_HOURS,
        help="age threshold in hours (default: %(default)s)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=settings.LOG_LEVEL)

    reaper = StaleOrderReaper(OrderRepository())
    with session_factory() as session:
        result = reaper.reap(session, args.hours)

    print(f"Reaped {result.count} stale orders (cutoff {result.cutoff.isoformat()})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
