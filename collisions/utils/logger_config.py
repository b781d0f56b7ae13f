import logging
import os
from datetime import datetime


def setup_logger(name):
    """
    Basic Custom Logging formatting and handling

    Parameters
    name (str) : Name of the logger

    Returns:
    logging.Logger : Configured Logger Instance
    """

    log_dir = os.environ.get('COLLISIONS_LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)

    # Create Logger
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Modules are imported more than once under streamlit reruns
    if logger.handlers:
        return logger

    # Configs for how logs will appear in logs/
    file_format = logging.Formatter(
        '%(levelname)s : %(name)s : %(funcName)s : %(lineno)d : %(message)s'
    )

    log_file = os.path.join(log_dir, f'nyc_collisions_{datetime.now().strftime("%m%d%Y")}')
    file_handler = logging.FileHandler(log_file)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_format)

    # Console logs configs
    console_format = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_format)

    # Add the config to the Logger obj
    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
