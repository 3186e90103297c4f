"""
Base class for simulated equipment served by the emulator.

The protocol front ends only rely on this interface: point values by name,
point metadata, a simulated clock to advance and an optional BACnet
application bound to the equipment.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from bacpypes3.app import Application

    from unit_emulator.core.results import OperationResult


class SimulatedEquipment(ABC):
    """
    Equipment with named points and a simulated clock.

    Args:
        name: Name used in logs, usually the BACnet device name
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._bacnet_app: Optional["Application"] = None

    @abstractmethod
    def get_process_variables(self) -> Dict[str, Any]:
        """Current value of every point, keyed by point name."""

    @classmethod
    @abstractmethod
    def get_process_variables_metadata(cls) -> Dict[str, Dict[str, Any]]:
        """
        Describe every point.

        Returns:
            Point name mapped to a dict with 'type', 'label' and 'unit', e.g.
            {"temp_supply": {"type": float, "label": "Supply air temperature", "unit": "degC"}}
        """

    @abstractmethod
    def advance_simulated_seconds(self, seconds: Any) -> "OperationResult":
        """Move the simulated clock forward."""

    def attach_bacnet_app(self, app: "Application") -> None:
        self._bacnet_app = app

    def detach_bacnet_app(self) -> None:
        self._bacnet_app = None

    @property
    def has_bacnet(self) -> bool:
        return self._bacnet_app is not None

    @property
    def bacnet_app(self) -> Optional["Application"]:
        return self._bacnet_app

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"
