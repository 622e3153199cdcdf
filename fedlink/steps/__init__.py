"""The fixed catalog of federation setup steps."""

from .base import StepDefinition, define_step
from .google import G1, G2, G3, G4, G5, G6, G7, G8, GOOGLE_STEPS
from .microsoft import M1, M2, M3, M4, M5, M6, M7, M8, M9, M10, MICROSOFT_STEPS

# Declaration order doubles as the suggested run order.
ALL_STEPS = [G1, G2, G3, G4, G5, M1, M2, M3, M4, M5, M6, M7, M8, G6, G7, G8, M9, M10]

__all__ = [
    "ALL_STEPS",
    "GOOGLE_STEPS",
    "MICROSOFT_STEPS",
    "StepDefinition",
    "define_step",
]
