"""Base class for simulated equipment."""

from unit_emulator.equipment.base import SimulatedEquipment

__all__ = ["SimulatedEquipment"]
