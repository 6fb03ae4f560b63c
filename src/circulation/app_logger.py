import logging, os

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DEFAULT_LEVEL = os.getenv("CIRCULATION_LOG_LEVEL", "INFO").upper()

def setup_logging():
    # Configure root once
    logging.basicConfig(level=getattr(logging, _DEFAULT_LEVEL, logging.INFO), format=LOG_FORMAT)

    logger = logging.getLogger("circulation")
    logger.setLevel(getattr(logging, _DEFAULT_LEVEL, logging.INFO))
    return logger

def get_logger(name: str | None = None) -> logging.Logger:
    """Child of the `circulation` logger; module names are folded under it."""
    base = logging.getLogger("circulation")
    if not name or name == "circulation":
        return base
    if name.startswith("circulation."):
        name = name[len("circulation."):]
    return base.getChild(name)

logger = setup_logging()
