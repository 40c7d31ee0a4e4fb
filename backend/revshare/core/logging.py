"""Root logging setup and the named loggers shared by the webhook, payout and auth paths"""
import logging

from revshare.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"

# Client libraries that log every HTTP round trip at INFO
QUIET_LOGGERS = ("stripe", "resend", "urllib3", "httpx", "httpcore")


def setup_logging(level: str = None):
    root_level = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    if not isinstance(root_level, int):
        root_level = logging.INFO
    logging.basicConfig(level=root_level, format=LOG_FORMAT, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


webhook_logger = logging.getLogger("revshare.webhook")
payout_logger = logging.getLogger("revshare.payout")
security_logger = logging.getLogger("revshare.security")
