from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from defuse.core.context import FREE_PLAY_PRESETS, FreePlayConfig
from defuse.core.events import EventKind
from defuse.errors import InvalidEvent


class PayloadValidator(ABC):
    """Turns a raw event payload into the typed value its handler expects.

    Raises InvalidEvent when the payload does not fit the event.
    """

    @abstractmethod
    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class NoPayload(PayloadValidator):
    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if payload not in (None, {}):
            raise InvalidEvent(f"Event '{kind.value}' takes no payload")
        return None


@dataclass(frozen=True, slots=True)
class IdPayload(PayloadValidator):
    """A non-empty identifier string (section or mission id)."""

    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if not isinstance(payload, str) or not payload.strip():
            raise InvalidEvent(f"Event '{kind.value}' expects a non-empty id string")
        return payload.strip()


@dataclass(frozen=True, slots=True)
class ModuleIndexPayload(PayloadValidator):
    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if isinstance(payload, bool) or not isinstance(payload, int):
            raise InvalidEvent(f"Event '{kind.value}' expects an integer module index")
        return payload


@dataclass(frozen=True, slots=True)
class PresetPayload(PayloadValidator):
    presets: dict[str, FreePlayConfig]

    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if not isinstance(payload, str):
            raise InvalidEvent(f"Event '{kind.value}' expects a preset name")
        cfg = self.presets.get(payload.strip().casefold())
        if cfg is None:
            allowed = ",".join(sorted(self.presets))
            raise InvalidEvent(f"Unknown preset '{payload}' (allowed: {allowed})")
        return cfg


@dataclass(frozen=True, slots=True)
class FreePlayPayload(PayloadValidator):
    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if isinstance(payload, FreePlayConfig):
            return payload
        if not isinstance(payload, dict):
            raise InvalidEvent(f"Event '{kind.value}' expects a free play configuration object")
        try:
            return FreePlayConfig.model_validate(payload)
        except ValidationError as e:
            raise InvalidEvent(f"Invalid free play configuration: {e.errors(include_url=False)}") from e


@dataclass(frozen=True, slots=True)
class AnswerPayload(PayloadValidator):
    """Shape check only; the addressed module validates the answer itself."""

    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if isinstance(payload, bool) or not isinstance(payload, (int, str)):
            raise InvalidEvent(f"Event '{kind.value}' expects an int or string answer")
        return payload


@dataclass(frozen=True, slots=True)
class ElapsedPayload(PayloadValidator):
    def parse(self, *, kind: EventKind, payload: Any) -> Any:
        if isinstance(payload, bool) or not isinstance(payload, (int, float)):
            raise InvalidEvent("Tick expects elapsed seconds")
        if not math.isfinite(payload) or payload < 0:
            raise InvalidEvent("Tick elapsed seconds must be finite and >= 0")
        return float(payload)


DEFAULT_PAYLOAD_VALIDATORS: dict[EventKind, PayloadValidator] = {
    EventKind.select_campaign: NoPayload(),
    EventKind.select_free_play: NoPayload(),
    EventKind.choose_section: IdPayload(),
    EventKind.choose_mission: IdPayload(),
    EventKind.choose_quick_config: PresetPayload(presets=FREE_PLAY_PRESETS),
    EventKind.open_advanced: NoPayload(),
    EventKind.confirm_config: FreePlayPayload(),
    EventKind.config_built: NoPayload(),
    EventKind.select_module: ModuleIndexPayload(),
    EventKind.submit_answer: AnswerPayload(),
    EventKind.back: NoPayload(),
    EventKind.cancel: NoPayload(),
    EventKind.reset: NoPayload(),
    EventKind.tick: ElapsedPayload(),
}


def parse_payload(kind: EventKind, payload: Any) -> Any:
    validator = DEFAULT_PAYLOAD_VALIDATORS.get(kind)
    if validator is None:
        raise InvalidEvent(f"Unknown event: {kind}")
    return validator.parse(kind=kind, payload=payload)
