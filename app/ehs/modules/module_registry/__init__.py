"""
Module registry.

Every functional area of the platform (incidents, audits, inspections, training,
licensing, PPE, waste, health, ...) is declared as a module with required and
optional dependencies on sibling modules. This package:
- validates the declared catalog once at startup (unknown references, cycles)
- keeps the persisted on/off state per module
- enforces that a module is only enabled while everything it requires is enabled
- exposes a read-only registry to the rest of the app and a JSON admin API
"""
