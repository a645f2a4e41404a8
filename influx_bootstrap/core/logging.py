import logging
import sys


def configure_logging(level: str = "INFO", stream=None) -> None:
    """Send bootstrap logs to stdout so they land next to the container's output."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(message)s",
        stream=stream or sys.stdout,
        force=True,
    )
    # httpx logs every health probe at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
