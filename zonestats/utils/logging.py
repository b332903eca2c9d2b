"""
Logging setup shared by the app factory and CLI entry points.
"""

import logging

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def configure_logging(level='INFO'):
    """Configure root logging once; later calls only adjust the level."""
    global _configured

    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if not _configured:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        # Quiet noisy libraries
        logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        _configured = True

    logging.getLogger('zone_aggregates').setLevel(level)
