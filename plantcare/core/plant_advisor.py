"""
PlantCare — AI Plant Advisor.

Turns free-form LLM answers into typed results:
  - generate_recommendation: care plan + best spaces for a new plant
  - answer_question: short answer about an existing plant, with optional
    structured edits the user can review and apply
  - identify_plant: common / Latin name from a photo

Responses are stripped of markdown fences, cut down to the outermost JSON
object and validated with pydantic. Anything that does not validate raises
InvalidResponse.
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from plantcare.core import care_schedule
from plantcare.core.llm import InvalidResponse, complete
from plantcare.data import codec
from plantcare.data.models import (
    CARE_STEP_LABELS,
    CareStep,
    CareStepType,
    Direction,
    HumidityPreference,
    LightType,
    Plant,
    Room,
    Zone,
)

if TYPE_CHECKING:
    from plantcare.data.store import DataStore

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTED_FREQUENCY_DAYS = 7
UNKNOWN_PLANT = "Unknown Plant"


class SpacePlacementPreference(Enum):
    INDOOR = "Indoor"
    OUTDOOR = "Outdoor"
    NO_PREFERENCE = "No Preference"


# ---------------------------------------------------------------------------
# Response contracts
# ---------------------------------------------------------------------------

class _LLMModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(populate_by_name=True)


def _enum_or_none(table: dict, raw: Any):
    if raw is None or raw == "" or isinstance(raw, Enum):
        return raw
    return codec.parse_label(table, raw)


class AIPlantResponse(_LLMModel):
    """Care plan for a new plant.

    JSON example:
    {
        "name": "Snake Plant",
        "latinName": "Dracaena trifasciata",
        "lightType": "Indirect",
        "preferredLightDirection": "East",
        "wateringInstructions": "Let soil dry out fully",
        "wateringFrequencyDays": 14,
        "generalNotes": "Very tolerant",
        "recommendedSpaces": ["Bedroom", "Living Room"]
    }
    """
    name: str
    latin_name: str | None = Field(default=None, alias="latinName")
    light_type: LightType = Field(alias="lightType")
    preferred_light_direction: Direction = Field(alias="preferredLightDirection")
    humidity_preference: HumidityPreference | None = Field(default=None, alias="humidityPreference")
    watering_instructions: str = Field(alias="wateringInstructions")
    watering_frequency_days: int = Field(alias="wateringFrequencyDays")
    misting_instructions: str | None = Field(default=None, alias="mistingInstructions")
    misting_frequency_days: int | None = Field(default=None, alias="mistingFrequencyDays")
    dusting_instructions: str | None = Field(default=None, alias="dustingInstructions")
    dusting_frequency_days: int | None = Field(default=None, alias="dustingFrequencyDays")
    rotation_instructions: str | None = Field(default=None, alias="rotationInstructions")
    rotation_frequency_days: int | None = Field(default=None, alias="rotationFrequencyDays")
    general_notes: str = Field(default="", alias="generalNotes")
    recommended_spaces: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("recommendedSpaces", "recommendedRooms", "recommended_spaces"),
    )

    @field_validator("light_type", mode="before")
    @classmethod
    def parse_light_type(cls, v):
        return _enum_or_none(codec.LIGHT_TYPE_LABELS, v)

    @field_validator("preferred_light_direction", mode="before")
    @classmethod
    def parse_direction(cls, v):
        return _enum_or_none(codec.DIRECTION_LABELS, v)

    @field_validator("humidity_preference", mode="before")
    @classmethod
    def parse_humidity(cls, v):
        return _enum_or_none(codec.HUMIDITY_LABELS, v) or None


class CareSuggestion(_LLMModel):
    type: CareStepType
    custom_name: str | None = Field(default=None, alias="customName")
    instructions: str | None = None
    frequency_days: int | None = Field(default=None, alias="frequencyDays")

    @field_validator("type", mode="before")
    @classmethod
    def parse_type(cls, v):
        return _enum_or_none(CARE_STEP_LABELS, v)


class PlantChangeSuggestion(_LLMModel):
    """Edits proposed for an existing plant. Only changed fields are set.

    `assigned_space` carries a space NAME (room or zone), never an id.
    """
    name: str | None = None
    assigned_space: str | None = Field(
        default=None,
        validation_alias=AliasChoices("assignedRoomID", "assignedSpace", "assigned_space"),
    )
    light_type: LightType | None = Field(default=None, alias="lightType")
    preferred_light_direction: Direction | None = Field(default=None, alias="preferredLightDirection")
    humidity_preference: HumidityPreference | None = Field(default=None, alias="humidityPreference")
    general_notes: str | None = Field(default=None, alias="generalNotes")
    care_steps: list[CareSuggestion] | None = Field(default=None, alias="careSteps")

    @field_validator("light_type", mode="before")
    @classmethod
    def parse_light_type(cls, v):
        return _enum_or_none(codec.LIGHT_TYPE_LABELS, v) or None

    @field_validator("preferred_light_direction", mode="before")
    @classmethod
    def parse_direction(cls, v):
        return _enum_or_none(codec.DIRECTION_LABELS, v) or None

    @field_validator("humidity_preference", mode="before")
    @classmethod
    def parse_humidity(cls, v):
        return _enum_or_none(codec.HUMIDITY_LABELS, v) or None

    @property
    def is_empty(self) -> bool:
        return all(
            getattr(self, name) in (None, [])
            for name in type(self).model_fields
        )


class AIPlantQuestionResponse(_LLMModel):
    answer: str
    suggested_changes: PlantChangeSuggestion | None = Field(default=None, alias="suggestedChanges")


class PlantNameGuess(BaseModel):
    common_name: str
    latin_name: str | None = None

    @property
    def is_unknown(self) -> bool:
        return self.common_name == UNKNOWN_PLANT


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_RECOMMENDATION_PROMPT = """\
You are a plant care expert assistant. Your role is to provide detailed care recommendations \
for plants based on their species and the user's home layout including both indoor and outdoor spaces.

You must respond with ONLY a valid JSON object. No markdown, no explanation. Use this exact structure:
{
    "name": "Plant Name",
    "latinName": "Scientific name in Latin (optional)",
    "lightType": "Direct" | "Indirect" | "Low",
    "preferredLightDirection": "North" | "Northeast" | "East" | "Southeast" | "South" | "Southwest" | "West" | "Northwest",
    "humidityPreference": "Low" | "Medium" | "High",
    "wateringInstructions": "Detailed watering instructions",
    "wateringFrequencyDays": number,
    "mistingInstructions": "Misting instructions (optional)",
    "mistingFrequencyDays": number (optional),
    "dustingInstructions": "Dusting instructions (optional)",
    "dustingFrequencyDays": number (optional),
    "rotationInstructions": "Rotation instructions (optional)",
    "rotationFrequencyDays": number (optional),
    "generalNotes": "General care notes and tips",
    "recommendedSpaces": ["First choice space name", "Second choice space name"]
}

Base indoor recommendations on light needs vs window directions, humidity needs and
temperature (south-facing rooms tend to be warmer).
Base outdoor recommendations on hardiness, sun exposure (aspect, sun period, sun hours)
and wind tolerance.

Consider the user's placement preference but also factor in plant suitability.
If a plant is not suitable outdoors, recommend only indoor spaces even if outdoor was preferred.
Provide at least 2 space recommendations ordered by suitability, using the exact space names given.
"""

_QUESTION_PROMPT = """\
You are a plant care expert assistant answering a question about a specific plant.
If an image is provided, analyze it to give more accurate advice.

You must respond with ONLY a valid JSON object. No markdown, no explanation. Use this exact structure:
{
    "answer": "Your brief, helpful answer",
    "suggestedChanges": {
        "name": "New name (only if changing)",
        "assignedRoomID": "Space NAME (only if suggesting a different room or zone)",
        "lightType": "Direct" | "Indirect" | "Low" (only if changing),
        "preferredLightDirection": "North" | ... | "Northwest" (only if changing),
        "humidityPreference": "Low" | "Medium" | "High" (only if changing),
        "generalNotes": "Updated notes (only if changing)",
        "careSteps": [
            {"type": "Watering" | "Misting" | "Dusting" | "Rotation" | "Custom",
             "customName": "Name if type is Custom",
             "instructions": "Updated instructions",
             "frequencyDays": number}
        ]
    }
}

Rules:
1. Keep the answer to 2-3 sentences.
2. Only include fields in suggestedChanges that you are actually changing.
3. If no changes are suggested, set suggestedChanges to null.
4. Only suggest changes that directly relate to the question.
5. For outdoor zones, consider hardiness, sun tolerance and wind exposure.
"""

_IDENTIFY_PROMPT = """\
You are a plant identification expert. Analyze the provided image and identify the plant species.
Return ONLY the common name and Latin name in this exact format:
Common Name (Latin name)

For example:
Monstera Deliciosa (Monstera deliciosa)
Snake Plant (Sansevieria trifasciata)

If you cannot identify the plant with certainty, return "Unknown Plant".
No other text, explanations or formatting.
"""


# ---------------------------------------------------------------------------
# Response cleaning
# ---------------------------------------------------------------------------

def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown fences and keep only the outermost JSON object."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    if cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    cleaned_text = cleaned_text.strip()

    start, end = cleaned_text.find("{"), cleaned_text.rfind("}")
    if start != -1 and end > start:
        cleaned_text = cleaned_text[start:end + 1]
    return cleaned_text


def _parse_model(raw_text: str, model: type[BaseModel]):
    cleaned = _clean_llm_response(raw_text)
    try:
        return model.model_validate(json.loads(cleaned))
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text)
        raise InvalidResponse("Response was not valid JSON") from exc
    except (ValidationError, codec.CodecError) as exc:
        logger.error("LLM response did not match %s: %s", model.__name__, exc)
        raise InvalidResponse(f"Response did not match {model.__name__}") from exc


# ---------------------------------------------------------------------------
# Prompt context
# ---------------------------------------------------------------------------

def _spaces_info(rooms: list[Room], zones: list[Zone]) -> list[dict]:
    rooms_info = [
        {
            "name": room.name,
            "type": "indoor",
            "windows": [{"direction": codec.label(w.direction)} for w in room.windows],
        }
        for room in rooms
    ]
    zones_info = [
        {
            "name": zone.name,
            "type": "outdoor",
            "aspect": codec.label(zone.aspect),
            "sunPeriod": codec.label(zone.sun_period),
            "wind": codec.label(zone.wind),
            "sunHours": codec.label(zone.inferred_sun_hours),
        }
        for zone in zones
    ]
    return rooms_info + zones_info


def _plant_info(plant: Plant, rooms: list[Room], zones: list[Zone], now: datetime) -> dict:
    room = next((r for r in rooms if r.id == plant.assigned_room_id), None)
    zone = next((z for z in zones if z.id == plant.assigned_zone_id), None)
    if room is not None:
        location, location_type = room.name, "indoor"
    elif zone is not None:
        location, location_type = zone.name, "outdoor"
    else:
        location, location_type = "Not assigned", "none"

    if plant.assigned_window_id is None:
        window_text = "Not assigned to window"
    else:
        window = next(
            (w for r in rooms for w in r.windows if w.id == plant.assigned_window_id), None,
        )
        window_text = codec.label(window.direction) if window else "Unknown"

    return {
        "name": plant.name,
        "currentLocation": location,
        "currentLocationType": location_type,
        "currentWindow": window_text,
        "lightType": codec.label(plant.light_type),
        "preferredLightDirection": codec.label(plant.preferred_light_direction),
        "humidityPreference": codec.label(plant.humidity_preference) or "Not specified",
        "generalNotes": plant.general_notes,
        "careSteps": [
            {
                "type": codec.label(step.type),
                "displayName": step.display_name,
                "instructions": step.instructions,
                "frequencyDays": step.frequency_days,
                "isOverdue": care_schedule.is_overdue(step, now),
                "daysUntilDue": care_schedule.days_until_due(step, now),
                "lastCompleted": (
                    step.last_completed_date.isoformat(timespec="minutes")
                    if step.last_completed_date else "Never"
                ),
            }
            for step in plant.care_steps
        ],
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def generate_recommendation(
    plant_name: str,
    rooms: list[Room],
    zones: list[Zone],
    preference: SpacePlacementPreference = SpacePlacementPreference.NO_PREFERENCE,
) -> AIPlantResponse:
    """Ask the LLM for a care plan and ranked space recommendations."""
    spaces = json.dumps(_spaces_info(rooms, zones), indent=2)
    user_prompt = (
        f"I have a {plant_name} and need care recommendations.\n\n"
        f"My placement preference is: {preference.value}\n\n"
        f"My home has the following spaces:\n{spaces}\n\n"
        "Please provide complete care instructions and recommend the best spaces "
        "for this plant based on its needs, my preference, and my available spaces."
    )
    raw = await complete(system=_RECOMMENDATION_PROMPT, user_message=user_prompt, max_tokens=1500)
    response = _parse_model(raw, AIPlantResponse)
    logger.info("Recommendation for '%s': %s", plant_name, response.recommended_spaces)
    return response


async def answer_question(
    question: str,
    plant: Plant,
    rooms: list[Room],
    zones: list[Zone],
    photo: bytes | None = None,
) -> AIPlantQuestionResponse:
    """Answer a question about `plant`, optionally looking at a JPEG photo."""
    plant_json = json.dumps(_plant_info(plant, rooms, zones, datetime.now()), indent=2)
    spaces = json.dumps(_spaces_info(rooms, zones), indent=2)
    user_prompt = (
        f"Current plant information:\n{plant_json}\n\n"
        f"Available spaces in the home (both indoor and outdoor):\n{spaces}\n\n"
        f"User's question: {question}"
    )
    if photo is not None:
        user_prompt += "\n\nI've included a photo of the plant for your analysis."

    raw = await complete(
        system=_QUESTION_PROMPT, user_message=user_prompt, image=photo, max_tokens=1500,
    )
    response = _parse_model(raw, AIPlantQuestionResponse)
    if response.suggested_changes is not None and response.suggested_changes.is_empty:
        response.suggested_changes = None
    logger.info(
        "Answered question about %s (changes suggested: %s)",
        plant.name, response.suggested_changes is not None,
    )
    return response


def parse_name_guess(raw_text: str) -> PlantNameGuess:
    """Split 'Common Name (Latin name)' into its parts."""
    text = raw_text.strip().strip('"').strip()
    if not text or text.lower() == UNKNOWN_PLANT.lower():
        return PlantNameGuess(common_name=UNKNOWN_PLANT)
    if text.endswith(")") and "(" in text:
        common, _, latin = text[:-1].rpartition("(")
        if common.strip():
            return PlantNameGuess(common_name=common.strip(), latin_name=latin.strip() or None)
    return PlantNameGuess(common_name=text)


async def identify_plant(image: bytes) -> PlantNameGuess:
    raw = await complete(
        system=_IDENTIFY_PROMPT,
        user_message="Please identify this plant:",
        image=image,
        max_tokens=64,
        temperature=0.3,
    )
    guess = parse_name_guess(raw)
    logger.info("Identified plant: %s (%s)", guess.common_name, guess.latin_name)
    return guess


# ---------------------------------------------------------------------------
# Turning responses into plants
# ---------------------------------------------------------------------------

def _find_space(name: str, store: DataStore) -> Room | Zone | None:
    needle = name.strip().lower()
    room = next((r for r in store.rooms if r.name.lower() == needle), None)
    if room is not None:
        return room
    return next((z for z in store.zones if z.name.lower() == needle), None)


def _optional_step(
    step_type: CareStepType, instructions: str | None, frequency_days: int | None,
) -> CareStep | None:
    if not instructions or not frequency_days or frequency_days <= 0:
        return None
    return CareStep(type=step_type, instructions=instructions, frequency_days=frequency_days)


def plant_from_recommendation(response: AIPlantResponse, store: DataStore) -> Plant:
    """Build (but do not add) a Plant from an AI recommendation.

    The plant goes to the first recommended space that exists. In a room, the
    window facing the preferred direction is picked, or the only window.
    """
    plant = Plant(
        name=response.name,
        latin_name=response.latin_name,
        preferred_light_direction=response.preferred_light_direction,
        light_type=response.light_type,
        humidity_preference=response.humidity_preference,
        general_notes=response.general_notes,
    )
    plant.add_care_step(CareStep(
        type=CareStepType.WATERING,
        instructions=response.watering_instructions,
        frequency_days=max(response.watering_frequency_days, 1),
    ))
    for step in (
        _optional_step(CareStepType.MISTING, response.misting_instructions, response.misting_frequency_days),
        _optional_step(CareStepType.DUSTING, response.dusting_instructions, response.dusting_frequency_days),
        _optional_step(CareStepType.ROTATION, response.rotation_instructions, response.rotation_frequency_days),
    ):
        if step is not None:
            plant.add_care_step(step)

    for space_name in response.recommended_spaces:
        space = _find_space(space_name, store)
        if isinstance(space, Room):
            plant.assigned_room_id = space.id
            window = next(
                (w for w in space.windows if w.direction is plant.preferred_light_direction), None,
            )
            if window is None and len(space.windows) == 1:
                window = space.windows[0]
            plant.assigned_window_id = window.id if window else None
            break
        if isinstance(space, Zone):
            plant.assigned_zone_id = space.id
            break
    return plant


def apply_suggested_changes(
    plant: Plant, suggestion: PlantChangeSuggestion, store: DataStore,
) -> Plant:
    """Return a copy of `plant` with the suggested edits applied.

    Space names are resolved to rooms first, then zones; unknown names are
    ignored. Care suggestions update the first step of the same type or are
    appended as new steps.
    """
    updated = copy.deepcopy(plant)

    if suggestion.name:
        updated.name = suggestion.name

    if suggestion.assigned_space:
        space = _find_space(suggestion.assigned_space, store)
        if isinstance(space, Room):
            updated.assigned_room_id = space.id
            updated.assigned_zone_id = None
            updated.assigned_window_id = space.windows[0].id if len(space.windows) == 1 else None
        elif isinstance(space, Zone):
            updated.assigned_zone_id = space.id
            updated.assigned_room_id = None
            updated.assigned_window_id = None
        else:
            logger.warning("Suggested space '%s' not found, keeping current location", suggestion.assigned_space)

    if suggestion.light_type is not None:
        updated.light_type = suggestion.light_type
    if suggestion.preferred_light_direction is not None:
        updated.preferred_light_direction = suggestion.preferred_light_direction
    if suggestion.humidity_preference is not None:
        updated.humidity_preference = suggestion.humidity_preference
    if suggestion.general_notes is not None:
        updated.general_notes = suggestion.general_notes

    for care in suggestion.care_steps or []:
        existing = next((s for s in updated.care_steps if s.type is care.type), None)
        if existing is not None:
            if care.instructions is not None:
                existing.instructions = care.instructions
            if care.frequency_days is not None and care.frequency_days > 0:
                existing.frequency_days = care.frequency_days
            if care.type is CareStepType.CUSTOM and care.custom_name:
                existing.custom_name = care.custom_name
        else:
            frequency = care.frequency_days
            updated.add_care_step(CareStep(
                type=care.type,
                custom_name=care.custom_name,
                instructions=care.instructions or "",
                frequency_days=frequency if frequency and frequency > 0 else DEFAULT_SUGGESTED_FREQUENCY_DAYS,
            ))

    return updated
