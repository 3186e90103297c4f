"""
Ventilation unit emulator.

Emulates a Nordic heat-recovery ventilation unit on the local network: a
BACnet device serving the unit's point catalog with command-priority write
rules, a simulated state engine that ages filters, runs feature timers and
derives temperatures, and the vendor's multicast discovery responder.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("hvac-unit-emulator")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
