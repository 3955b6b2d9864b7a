import argparse
import logging

from app.config import Settings
from app.db.store import InvoiceStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Create the invoice tables.")
    parser.add_argument("--reset", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    settings = Settings.from_env()
    store = InvoiceStore.open(settings.database_url)
    try:
        store.init_schema(reset=args.reset)
    finally:
        store.close()
    logger.info("DB schema created at %s", settings.database_url)


if __name__ == "__main__":
    main()
