"""Logging utilities."""
from __future__ import annotations

import logging
import logging.config
from pathlib import Path

import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "logging.yaml"


def configure_logging(config_path: Path | None = None) -> None:
    """Apply the YAML logging config; fall back to plain INFO output when it is missing."""
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        logging.basicConfig(level=logging.INFO)
        logging.getLogger(__name__).warning("logging config %s not found", path)
        return
    with path.open("r", encoding="utf-8") as config_file:
        logging.config.dictConfig(yaml.safe_load(config_file))
