from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Any, Protocol

from gridledger.core.exceptions import GenerationOutputError
from gridledger.services.grid import Grid

logger = logging.getLogger(__name__)

GENERATOR_AUTHOR_ID = "AI_GENERATOR"

FENCED_JSON_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
REQUIRED_KEYS = ("level", "section", "grid")


class GenerationOracle(Protocol):
    """Anything that turns a prompt into candidate timetable text. Its output is never trusted."""

    def generate(self, prompt: str) -> str: ...


@dataclass(frozen=True)
class GeneratedTimetable:
    level: int
    section: str
    grid: Grid


def _decode(text: str) -> Any:
    match = FENCED_JSON_PATTERN.search(text)
    candidate = match.group(1) if match else text
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning("Generator output is not valid JSON: %s", exc)
        raise GenerationOutputError(["The response received from the generator is not valid JSON."]) from exc


def parse_generated_output(text: str) -> GeneratedTimetable:
    if not text or not text.strip():
        raise GenerationOutputError(["The generator returned an empty response."])

    document = _decode(text)
    if isinstance(document, list):
        if len(document) != 1:
            raise GenerationOutputError(
                [f"Expected exactly one timetable in the generator response, got {len(document)}."]
            )
        document = document[0]
    if not isinstance(document, dict):
        raise GenerationOutputError(["The generator response must be a JSON object."])

    errors = [
        f'JSON structure is incomplete, the main field "{key}" is missing.'
        for key in REQUIRED_KEYS
        if key not in document
    ]
    raw_grid = document.get("grid")
    if "grid" in document and not isinstance(raw_grid, dict):
        errors.append("The 'grid' field is missing or is not an object.")

    level: int | None = None
    if "level" in document:
        try:
            level = int(document["level"])
        except (TypeError, ValueError):
            errors.append(f"The 'level' field must be an integer, got {document['level']!r}.")

    grid: Grid | None = None
    if isinstance(raw_grid, dict):
        try:
            grid = Grid.from_payload(raw_grid)
        except ValueError as exc:
            errors.append(f"The 'grid' field could not be read: {exc}")

    if errors:
        raise GenerationOutputError(errors)
    return GeneratedTimetable(level=level, section=str(document["section"]).strip(), grid=grid)


def request_generated_timetable(oracle: GenerationOracle, prompt: str) -> GeneratedTimetable:
    text = oracle.generate(prompt)
    return parse_generated_output(text)
