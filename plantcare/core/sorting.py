"""Sort options for plant and space lists."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from plantcare.core import care_schedule
from plantcare.data.models import Plant, Room, Zone

if TYPE_CHECKING:
    from plantcare.data.store import DataStore


class PlantsSortOption(Enum):
    NAME_ASCENDING = "A-Z"
    NAME_DESCENDING = "Z-A"
    NEXT_WATERING_DUE = "Next Watering Due"
    LAST_WATERING_DUE = "Last Watering Due"
    GROUP_BY_SPACE_ASCENDING = "Group by Space (A-Z)"
    GROUP_BY_SPACE_DESCENDING = "Group by Space (Z-A)"


class SpacesSortOption(Enum):
    NAME_ASCENDING = "A-Z"
    NAME_DESCENDING = "Z-A"
    MOST_PLANTS = "Most Plants"
    FEWEST_PLANTS = "Fewest Plants"


def _name_key(plant: Plant) -> str:
    return plant.name.casefold()


def sort_plants(
    plants: list[Plant],
    option: PlantsSortOption,
    store: DataStore,
    now: datetime | None = None,
) -> list[Plant]:
    """Return a sorted copy. Plants without a watering step sort last."""
    now = now or datetime.now()

    if option is PlantsSortOption.NAME_ASCENDING:
        return sorted(plants, key=_name_key)
    if option is PlantsSortOption.NAME_DESCENDING:
        return sorted(plants, key=_name_key, reverse=True)

    if option in (PlantsSortOption.NEXT_WATERING_DUE, PlantsSortOption.LAST_WATERING_DUE):
        reverse = option is PlantsSortOption.LAST_WATERING_DUE
        missing = date.min if reverse else date.max

        def _due(plant: Plant) -> date:
            return care_schedule.next_watering_date(plant, now) or missing

        return sorted(plants, key=_due, reverse=reverse)

    # Group by space: spaces in the requested direction, plants A-Z inside each
    by_space: dict[str, list[Plant]] = {}
    for plant in plants:
        by_space.setdefault(store.space_name_for_plant(plant), []).append(plant)
    space_names = sorted(
        by_space,
        key=str.casefold,
        reverse=option is PlantsSortOption.GROUP_BY_SPACE_DESCENDING,
    )
    return [p for name in space_names for p in sorted(by_space[name], key=_name_key)]


def sort_spaces(
    spaces: list[Room | Zone],
    option: SpacesSortOption,
    store: DataStore,
) -> list[Room | Zone]:
    """Sort rooms and zones together; plant-count ties fall back to name."""

    def _count(space: Room | Zone) -> int:
        if isinstance(space, Room):
            return len(store.plants_in_room(space.id))
        return len(store.plants_in_zone(space.id))

    def _name(space: Room | Zone) -> str:
        return space.name.casefold()

    if option is SpacesSortOption.NAME_ASCENDING:
        return sorted(spaces, key=_name)
    if option is SpacesSortOption.NAME_DESCENDING:
        return sorted(spaces, key=_name, reverse=True)
    if option is SpacesSortOption.MOST_PLANTS:
        return sorted(spaces, key=lambda s: (-_count(s), _name(s)))
    return sorted(spaces, key=lambda s: (_count(s), _name(s)))
