import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Third-party loggers that are chatty at INFO: httpx logs every geolocation
# lookup URL and python-multipart logs each parsed form part.
_NOISY_LOGGERS = ("httpx", "httpcore", "multipart", "python_multipart")


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler once and align the multiquote loggers on ``level``."""
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("multiquote").setLevel(resolved)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
