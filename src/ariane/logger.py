import logging

import notifiers.logging

from ariane import config

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s - %(message)s"


def setup_logging(*loggers: logging.Logger) -> None:
    """Configure root logging and attach notification handlers to ``loggers``.

    The level comes from ``OVERRIDE_LOGGING``. Warnings and errors are
    forwarded to Telegram when ``TELEGRAM_TOKEN`` is set.
    """
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel(config.OVERRIDE_LOGGING)
    for logger in loggers:
        logger.setLevel(config.OVERRIDE_LOGGING)
        for handler in get_notification_handlers():
            logger.addHandler(handler)


def get_notification_handlers() -> list[logging.Handler]:
    if config.TELEGRAM_TOKEN is None:
        return []
    handler = notifiers.logging.NotificationHandler(
        "telegram",
        defaults={
            "token": config.TELEGRAM_TOKEN,
            "chat_id": config.TELEGRAM_CHAT_ID,
        },
    )
    handler.setLevel(logging.WARNING)
    handler.setFormatter(
        logging.Formatter(f"ariane {config.VERSION}: %(levelname)s %(message)s")
    )
    return [handler]
