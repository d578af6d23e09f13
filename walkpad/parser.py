"""Normalize the vision model's answer into a five-field display reading."""
from __future__ import annotations

import json
from dataclasses import dataclass

from walkpad.errors import ParseError

SENTINEL = "--"
FIELDS = ("time", "calories", "speed", "steps", "distance")


@dataclass(frozen=True)
class ParsedReading:
    time: str = SENTINEL
    calories: str = SENTINEL
    speed: str = SENTINEL
    steps: str = SENTINEL
    distance: str = SENTINEL

    @property
    def formatted(self) -> str:
        return (
            f"Time: {self.time} | Cal: {self.calories} | Speed: {self.speed} "
            f"| Steps: {self.steps} | Dist: {self.distance}"
        )

    def as_dict(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in FIELDS}


def _field_value(value: object) -> str:
    """Falsy values become the sentinel; anything else is kept as text."""
    if not value:
        return SENTINEL
    return value if isinstance(value, str) else str(value)


def normalize_fields(data: dict) -> ParsedReading:
    """Map recognized keys onto the fixed record, ignoring unknown keys.

    The display shows either time/speed/distance or calories/speed/steps,
    both shapes land on the same five fields.
    """
    return ParsedReading(**{name: _field_value(data.get(name)) for name in FIELDS})


def parse_response(text: str | None) -> ParsedReading | None:
    """Strictly parse the whole response as a JSON object.

    JSON embedded in surrounding prose is not extracted; such responses are
    treated as carrying no data. Returns None when nothing usable was found.
    """
    try:
        return normalize_fields(load_object(text))
    except ParseError:
        return None


def load_object(text: str | None) -> dict:
    if not text:
        raise ParseError("Empty response")
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ParseError(f"Not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
    return data
