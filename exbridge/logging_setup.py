import logging
import logging.config
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_LOG_CONFIG = Path(__file__).with_name("log_config.yml")


def setup_logging(debug: bool = False, config_path: Optional[str] = None) -> None:
    """Configure logging from a YAML dictConfig file.

    :param debug: Set the root level to DEBUG instead of INFO.
    :param config_path: Alternative YAML file; defaults to the packaged ``log_config.yml``.
    """
    path = Path(config_path) if config_path else DEFAULT_LOG_CONFIG
    with open(path, "r") as f:
        log_cfg = yaml.safe_load(f.read())
    log_cfg.setdefault("root", {})["level"] = "DEBUG" if debug else "INFO"
    logging.config.dictConfig(log_cfg)
    logging.getLogger(__name__).debug("DEBUG MODE ENABLED")
