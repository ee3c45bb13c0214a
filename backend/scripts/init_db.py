"""Create (or with --drop, recreate) the CRM schema. Run out-of-band, never at request time."""
import argparse
import logging

from crm import models  # noqa: F401  registers tables on Base.metadata
from crm.db import Base, engine
from crm.settings import configure_logging

logger = logging.getLogger("crm.init_db")


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()

    configure_logging()
    if args.drop:
        Base.metadata.drop_all(engine)
        logger.info("dropped all tables")
    Base.metadata.create_all(engine)
    logger.info("schema ready: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()
