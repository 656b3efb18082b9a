"""
Read-only settings the panel shows to administrators.
"""

from types import MappingProxyType
from typing import Any, Iterable

import copy


class SettingsStore:
    def __init__(self, values: dict, plugins: Iterable[dict] = ()):
        """
        A snapshot of display settings, read through `await store.get(key)`.

        :param values: Display metadata such as the panel's name.
        :param plugins: Settings entries contributed by extensions, exposed under 'plugins'.
        """
        self._values = MappingProxyType({**values, "plugins": tuple(plugins)})

    def keys(self):
        return self._values.keys()

    async def get(self, key: str, default: Any = None) -> Any:
        value = self._values.get(key, default)

        # Callers get their own copy, the snapshot never changes
        if isinstance(value, tuple):
            return [copy.deepcopy(item) for item in value]
        return copy.deepcopy(value)
