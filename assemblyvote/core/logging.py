"""Logging utilities."""
from __future__ import annotations

import logging.config
import os
from pathlib import Path

_DEFAULT_CONFIG = Path(__file__).resolve().parent / "../.." / "configs" / "logging.yaml"


def configure_logging(config_path: Path | None = None) -> None:
    """Configure logging from YAML (``ASSEMBLYVOTE_LOG_CONFIG`` overrides the default file)."""
    path = config_path or Path(os.environ.get("ASSEMBLYVOTE_LOG_CONFIG", _DEFAULT_CONFIG))
    if path.exists():
        import yaml  # type: ignore[import-untyped]

        with path.open("r", encoding="utf-8") as config_file:
            logging.config.dictConfig(yaml.safe_load(config_file))
    else:
        logging.basicConfig(level=logging.INFO)
