import logging
import time


def now_ts() -> float:
    return time.time()


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Configure basic logging for the service and return its package logger."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("pricequiz")
