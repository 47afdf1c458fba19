"""
IP Firewall - Logging setup.
"""

from __future__ import annotations

import logging

from ipfirewall.config import Settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


def setup_logging(settings: Settings) -> None:
    """Configure root logging from settings (call once at startup)."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format=LOG_FORMAT,
        force=True,
    )
