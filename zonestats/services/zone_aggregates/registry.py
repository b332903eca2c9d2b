"""
Zone Aggregate Registry - lookup table from aggregate id to plugin.

Constructed once at process start and passed to the service. Registration is
write-once per id; there is no unregister. After startup the registry is only
read, so concurrent readers need no locking.

Usage:
    registry = ZoneAggregateRegistry()
    registry.register(rent_v1_plugin)

    plugin = registry.get("rent.v1")
"""

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel

from zonestats.services.zone_aggregates.errors import PluginRegistrationError
from zonestats.services.zone_aggregates.types import (
    AggregateId,
    AggregateParams,
    ZoneAggregateDisplay,
    ZoneAggregatePlugin,
)

logger = logging.getLogger('zone_aggregates.registry')


class ZoneAggregateRegistry:

    def __init__(self, plugins=None):
        self._plugins: Dict[AggregateId, ZoneAggregatePlugin] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: ZoneAggregatePlugin) -> None:
        """
        Register a plugin.

        Raises:
            PluginRegistrationError if the plugin is malformed or its id is
            already registered
        """
        _validate_plugin(plugin)
        if plugin.id in self._plugins:
            raise PluginRegistrationError(f"Aggregate plugin already registered: {plugin.id}")
        self._plugins[plugin.id] = plugin
        logger.debug(f"Registered aggregate plugin {plugin.id} v{plugin.version}")

    def get(self, aggregate_id: AggregateId) -> Optional[ZoneAggregatePlugin]:
        return self._plugins.get(aggregate_id)

    def list(self) -> List[ZoneAggregatePlugin]:
        """Plugins in registration order."""
        return list(self._plugins.values())

    def get_display(self, aggregate_id: AggregateId) -> Optional[ZoneAggregateDisplay]:
        plugin = self.get(aggregate_id)
        return plugin.display if plugin else None

    def __contains__(self, aggregate_id):
        return aggregate_id in self._plugins

    def __len__(self):
        return len(self._plugins)


def _validate_plugin(plugin) -> None:
    """Fail fast on malformed plugins instead of at call time."""
    if not isinstance(plugin, ZoneAggregatePlugin):
        raise PluginRegistrationError(f"Expected ZoneAggregatePlugin, got {type(plugin).__name__}")

    problems = []
    if not isinstance(plugin.id, str) or not plugin.id.strip():
        problems.append("id must be a non-empty string")
    if not isinstance(plugin.version, int) or isinstance(plugin.version, bool) or plugin.version < 1:
        problems.append("version must be a positive integer")
    if not isinstance(plugin.display, ZoneAggregateDisplay) or not plugin.display.label:
        problems.append("display must be a ZoneAggregateDisplay with a label")
    if not (isinstance(plugin.params_schema, type) and issubclass(plugin.params_schema, AggregateParams)):
        problems.append("params_schema must subclass AggregateParams")
    if not (isinstance(plugin.output_schema, type) and issubclass(plugin.output_schema, BaseModel)):
        problems.append("output_schema must be a pydantic model")
    if not callable(plugin.compute):
        problems.append("compute must be callable")

    if problems:
        raise PluginRegistrationError(
            f"Invalid aggregate plugin {getattr(plugin, 'id', '?')!r}: {'; '.join(problems)}"
        )
