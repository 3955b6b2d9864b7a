# scripts/sweep_overdue.py
"""
Mark pending invoices overdue once their payment link is older than
OVERDUE_AFTER_DAYS. Meant to be run from cron; safe to re-run.
"""

import logging

from app.config import Settings
from app.db.store import InvoiceStore

logger = logging.getLogger(__name__)


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    store = InvoiceStore.open(settings.database_url, overdue_after_days=settings.overdue_after_days)
    try:
        count = store.sweep_overdue()
    finally:
        store.close()

    logger.info("Overdue sweep complete: %s invoice(s) updated", count)


if __name__ == "__main__":
    main()
