"""
PlantCare — Built-in default data.

Loaded the first time the app starts with nothing persisted, or when stored
plant data is too old to read. Plants are placed by room name; any plant whose
room is missing from `rooms` is left unassigned.
"""

from __future__ import annotations

from plantcare.data.models import (
    CareStep,
    CareStepType,
    Direction,
    HumidityPreference,
    LightType,
    Plant,
    Room,
    Window,
)


def default_rooms() -> list[Room]:
    return [
        Room(name="Kitchen", windows=[Window(Direction.NORTHEAST)], order_index=0),
        Room(name="Living Room", windows=[Window(Direction.SOUTHWEST)], order_index=1),
        Room(name="Studio", windows=[Window(Direction.SOUTHWEST)], order_index=2),
        Room(
            name="Spare Bedroom",
            windows=[Window(Direction.SOUTHEAST), Window(Direction.SOUTHWEST)],
            order_index=3,
        ),
        Room(
            name="Master Bedroom",
            windows=[Window(Direction.SOUTHWEST), Window(Direction.NORTHEAST)],
            order_index=4,
        ),
        Room(name="Box Room", windows=[Window(Direction.NORTHEAST)], order_index=5),
        Room(name="Bathroom", windows=[Window(Direction.NORTHEAST)], order_index=6),
    ]


# (name, room, window direction or None for first, preferred direction,
#  light, humidity, notes, [(step type, instructions, frequency days)])
_DEFAULT_PLANTS = [
    ("Snake Plant", "Living Room", None, Direction.EAST, LightType.INDIRECT, HumidityPreference.LOW,
     "Very tolerant of neglect. Can handle low light but prefers bright indirect light",
     [(CareStepType.WATERING, "Water every 2-3 weeks, allowing soil to dry out between waterings", 14)]),
    ("Pothos", "Kitchen", None, Direction.NORTHEAST, LightType.INDIRECT, HumidityPreference.MEDIUM,
     "Fast growing, easy care. Trim to control size. Can propagate easily in water",
     [(CareStepType.WATERING, "Water when top inch of soil is dry, typically once a week", 7)]),
    ("Monstera Deliciosa", "Living Room", None, Direction.EAST, LightType.INDIRECT, HumidityPreference.HIGH,
     "Needs support as it grows. Benefits from occasional misting",
     [(CareStepType.WATERING, "Water when top 2 inches of soil are dry", 10),
      (CareStepType.ROTATION, "Rotate 1/4 turn weekly for even growth", 7),
      (CareStepType.DUSTING, "Wipe leaves monthly to keep them clean and shiny", 30)]),
    ("ZZ Plant", "Box Room", None, Direction.NORTH, LightType.LOW, HumidityPreference.LOW,
     "Extremely drought tolerant. Can handle low light areas well",
     [(CareStepType.WATERING, "Water every 2-3 weeks, less in winter. Allow to dry completely between waterings", 21)]),
    ("Spider Plant", "Bathroom", None, Direction.NORTHEAST, LightType.INDIRECT, HumidityPreference.MEDIUM,
     "Produces plantlets that can be propagated. Benefits from bathroom humidity",
     [(CareStepType.WATERING, "Water weekly, keeping soil lightly moist but not waterlogged", 7)]),
    ("Rubber Plant", "Studio", None, Direction.SOUTH, LightType.INDIRECT, HumidityPreference.MEDIUM,
     "Can grow tall - prune to control height",
     [(CareStepType.WATERING, "Water when top inch of soil is dry, reduce in winter", 10),
      (CareStepType.DUSTING, "Wipe leaves to keep shiny", 14)]),
    ("Peace Lily", "Master Bedroom", Direction.NORTHEAST, Direction.NORTH, LightType.INDIRECT, HumidityPreference.HIGH,
     "Drooping leaves indicate thirst. Remove spent flowers. Good air purifier",
     [(CareStepType.WATERING, "Water when leaves start to droop slightly, about once a week", 7)]),
    ("Philodendron", "Spare Bedroom", Direction.SOUTHEAST, Direction.EAST, LightType.INDIRECT, HumidityPreference.MEDIUM,
     "Fast growing vine. Can be trained on moss pole or allowed to trail",
     [(CareStepType.WATERING, "Water when top inch of soil is dry", 7)]),
    ("Aloe Vera", "Kitchen", None, Direction.SOUTH, LightType.DIRECT, HumidityPreference.LOW,
     "Succulent - needs well-draining soil. Leaves contain healing gel",
     [(CareStepType.WATERING, "Water every 2-3 weeks, allow soil to dry completely between waterings", 21)]),
    ("Fiddle Leaf Fig", "Living Room", None, Direction.EAST, LightType.INDIRECT, HumidityPreference.MEDIUM,
     "Sensitive to overwatering. Responds well to consistent care",
     [(CareStepType.WATERING, "Water when top 2 inches of soil are dry, typically weekly", 7),
      (CareStepType.ROTATION, "Rotate 1/4 turn monthly for even growth", 30),
      (CareStepType.DUSTING, "Dust leaves regularly to keep them healthy", 14)]),
]


def default_plants(rooms: list[Room]) -> list[Plant]:
    by_name = {r.name: r for r in rooms}
    plants: list[Plant] = []
    for name, room_name, window_dir, preferred, light, humidity, notes, steps in _DEFAULT_PLANTS:
        room = by_name.get(room_name)
        window = None
        if room is not None and room.windows:
            if window_dir is None:
                window = room.windows[0]
            else:
                window = next((w for w in room.windows if w.direction is window_dir), None)
        plants.append(Plant(
            name=name,
            assigned_room_id=room.id if room else None,
            assigned_window_id=window.id if window else None,
            preferred_light_direction=preferred,
            light_type=light,
            humidity_preference=humidity,
            general_notes=notes,
            care_steps=[
                CareStep(type=t, instructions=text, frequency_days=freq)
                for t, text, freq in steps
            ],
        ))
    return plants
