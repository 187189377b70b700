from __future__ import annotations

import random
from typing import Any, TypeVar

from defuse.modules.base import ModulePuzzle

_M = TypeVar("_M", bound=type[ModulePuzzle])

_MODULE_TYPES: dict[str, type[ModulePuzzle]] = {}


def register_module(cls: _M) -> _M:
    """Class decorator: make a puzzle variant available by its `kind`."""

    if not cls.kind:
        raise ValueError(f"{cls.__name__} must declare a kind")
    existing = _MODULE_TYPES.get(cls.kind)
    if existing is not None and existing is not cls:
        raise ValueError(f"Duplicate module kind: {cls.kind}")
    _MODULE_TYPES[cls.kind] = cls
    return cls


def registered_kinds() -> tuple[str, ...]:
    return tuple(sorted(_MODULE_TYPES))


def module_type(kind: str) -> type[ModulePuzzle]:
    cls = _MODULE_TYPES.get(kind)
    if cls is None:
        raise ValueError(f"Unknown module kind: {kind}")
    return cls


def generate_module(kind: str, rng: random.Random) -> ModulePuzzle:
    return module_type(kind).generate(rng)


def module_to_dict(module: ModulePuzzle) -> dict[str, Any]:
    return {"kind": module.kind, **module.model_dump(mode="json")}


def module_from_dict(data: dict[str, Any]) -> ModulePuzzle:
    fields = dict(data)
    kind = fields.pop("kind", None)
    if not isinstance(kind, str):
        raise ValueError("Module data is missing its kind")
    return module_type(kind).model_validate(fields)
