"""Misko entry point."""

import logging
import os
import sys

from dotenv import find_dotenv, load_dotenv

from .logging import configure_logger

USAGE = "Usage: misko bot"


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every polling request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if len(sys.argv) > 1 and sys.argv[1] == "bot":
        from .telegram import TelegramBot

        configure_logger(os.getenv("MISKO_LOG_DIR"))
        bot = TelegramBot()
        bot.run()
        return

    print(USAGE, file=sys.stderr)
    sys.exit(2)


if __name__ == "__main__":
    main()
