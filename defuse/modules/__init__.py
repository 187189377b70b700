"""Puzzle module variants.

Importing the package registers every built-in variant with the module registry.
"""

from defuse.modules import keypad, simon, wires  # noqa: F401
