# storefront/utils/logging.py
import logging
import sys

from storefront.utils.settings import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(levelname)s - [PID:%(process)d] - %(name)s - %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure the root logger once for the whole service.

    Logs go to stdout so they end up in the container log stream.
    Third-party clients are kept at WARNING to keep request logs readable.
    """
    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for noisy in ("stripe", "urllib3", "celery", "redis"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
