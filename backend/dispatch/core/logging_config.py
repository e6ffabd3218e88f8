import logging

from dispatch.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def setup_logging() -> None:
    """Единая настройка логов приложения (вызывается один раз при старте)."""
    global _configured
    if _configured:
        return
    logging.basicConfig(format=LOG_FORMAT, level=settings.log_level.upper())
    # SQL-запросы не нужны в обычном логе
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
