import logging
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: Optional[Union[str, int]] = None):
    """
    Configure root logging for the worker and scripts.

    Args:
        level: Log level name or number. Defaults to settings.LOG_LEVEL.
    """
    if level is None:
        from fintrack.config import settings
        level = settings.LOG_LEVEL

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)

    # The Plaid SDK's urllib3 pool is chatty at INFO
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
