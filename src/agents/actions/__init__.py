"""
Actions - Gmail, Calendar and Docs operations behind one registry
"""

from src.agents.actions.registry import (
    ActionContext,
    ActionRegistry,
    ActionSpec,
    NarrationScript,
    Organizer,
    build_default_registry,
)
from src.agents.actions.params import ActionParams, parse_parameters

__all__ = [
    "ActionContext",
    "ActionParams",
    "ActionRegistry",
    "ActionSpec",
    "NarrationScript",
    "Organizer",
    "build_default_registry",
    "parse_parameters",
]
