import logging


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
APP_LOGGERS = ("app", "services", "shared")


def configure_logging(level: str = "INFO") -> None:
    """Attach one stream handler per application logger namespace; safe to call twice."""
    formatter = logging.Formatter(LOG_FORMAT)
    for name in APP_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if not any(getattr(h, "_medtrack", False) for h in logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(formatter)
            handler._medtrack = True  # type: ignore[attr-defined]
            logger.addHandler(handler)
