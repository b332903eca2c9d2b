"""
Built-in aggregate plugins.

Each module exports one ZoneAggregatePlugin as ``PLUGIN``.
"""

from zonestats.services.zone_aggregates.plugins.rent_v1 import PLUGIN as rent_v1_plugin

BUILTIN_PLUGINS = [
    rent_v1_plugin,
]

__all__ = ['BUILTIN_PLUGINS', 'rent_v1_plugin']
