"""Parameter store interface and the bundled in-memory store.

The engine never owns parameter values. It reads them from a store and, when
attached through a ReportSession, listens for changes.
"""

import copy
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


# Called with (new_snapshot, old_snapshot) after every change
ParameterListener = Callable[[Dict[str, Any], Dict[str, Any]], None]


class ParameterStore(ABC):
    """Source of parameter values with change notifications."""

    @abstractmethod
    def get_value(self, name: str) -> Any:
        """Get a parameter value.

        Raises:
            KeyError: If the parameter is not set
        """
        pass

    @abstractmethod
    def has(self, name: str) -> bool:
        pass

    @abstractmethod
    def snapshot(self) -> Dict[str, Any]:
        """Copy of all current values."""
        pass

    @abstractmethod
    def subscribe(self, listener: ParameterListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that unregisters it."""
        pass


class InMemoryParameterStore(ParameterStore):
    """Dictionary-backed parameter store.

    Example:
        store = InMemoryParameterStore({"region": "EU"})
        unsubscribe = store.subscribe(lambda new, old: print(new))

        store.set("region", "US")      # listener sees {"region": "US"}
        unsubscribe()
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})
        self._listeners: List[ParameterListener] = []

    def get_value(self, name: str) -> Any:
        if name not in self._values:
            raise KeyError(
                f"Parameter '{name}' not found in store. Available parameters: {list(self._values.keys())}"
            )
        return self._values[name]

    def has(self, name: str) -> bool:
        return name in self._values

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)

    def set(self, name: str, value: Any) -> None:
        self.update({name: value})

    def update(self, values: Mapping[str, Any]) -> None:
        """Set several parameters at once, notifying listeners a single time."""
        previous = self.snapshot()
        self._values.update(values)
        self._notify(previous)

    def remove(self, name: str) -> None:
        if name not in self._values:
            return
        previous = self.snapshot()
        del self._values[name]
        self._notify(previous)

    def subscribe(self, listener: ParameterListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, previous: Dict[str, Any]) -> None:
        current = self.snapshot()
        if current == previous:
            return
        logger.debug("Parameters changed: %s", sorted(current))
        for listener in list(self._listeners):
            listener(current, previous)
