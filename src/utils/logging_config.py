import logging
import logging.config
import os

_configured = False


def configure_logging() -> None:
    """
    Configure root logging once per process.

    Uses the fileConfig file named by LOGGING_CONFIG when set, otherwise a
    basic stream handler at LOG_LEVEL (default INFO).
    """
    global _configured
    if _configured:
        return

    log_conf = os.environ.get('LOGGING_CONFIG')
    if log_conf:
        logging.config.fileConfig(log_conf, disable_existing_loggers=False)
    else:
        logging.basicConfig(
            level=os.environ.get('LOG_LEVEL', 'INFO'),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    _configured = True
