from enum import Enum


class Step(str, Enum):
    IDLE = "IDLE"                              # no intake in progress
    AWAIT_NAME = "AWAIT_NAME"                  # ask full name
    AWAIT_VEHICLE = "AWAIT_VEHICLE"            # ask make, model, year
    AWAIT_DESCRIPTION = "AWAIT_DESCRIPTION"    # ask problem / service needed


# Steps that mean the user is somewhere inside the intake dialogue
INTAKE_STEPS = frozenset({Step.AWAIT_NAME.value, Step.AWAIT_VEHICLE.value, Step.AWAIT_DESCRIPTION.value})
