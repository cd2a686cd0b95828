import logging
import sys

from happyinline.config import LOG_FORMAT


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(logging.WARNING)  # keep third-party libraries quiet
    if not any(getattr(h, "_happyinline", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._happyinline = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    logging.getLogger("happyinline").setLevel(level.upper())
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
