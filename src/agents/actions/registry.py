"""
Action registry - lookup table from action name to executor and narrator.

Every registered action carries both sides of its contract: an executor
that performs the action and returns prose, and a narrator that produces
the short "handoff" text streamed before execution. The table is built
once at startup.
"""

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Type

from loguru import logger

from src.agents.actions.params import ActionParams, parse_parameters
from src.config.constants import CALENDAR, DOCS, GMAIL
from src.config.settings import settings
from src.utils.errors import UnknownActionError


@dataclass(frozen=True)
class Organizer:
    """Identity used when actions create externally visible artifacts."""
    display_name: str
    email: str


@dataclass(frozen=True)
class ActionContext:
    """Everything an executor needs besides its parameters."""
    access_token: str
    organizer: Organizer
    timezone: str


@dataclass(frozen=True)
class NarrationScript:
    intro: str
    progress: str


Executor = Callable[[Any, ActionContext], Awaitable[str]]
Narrator = Callable[[Any], NarrationScript]


@dataclass(frozen=True)
class ActionSpec:
    """
    One registered action.

    Attributes:
        name: Action name the classifier emits (e.g. "sendEmail")
        capability: App that must be connected ("gmail", "calendar", "docs")
        params_model: Parameter model validated before execution
        executor: async (params, ctx) -> prose result
        narrator: (params) -> NarrationScript
        description: One line shown to the classifier
        idempotent: Safe to retry once on a retryable failure
    """
    name: str
    capability: str
    params_model: Type[ActionParams]
    executor: Executor
    narrator: Narrator
    description: str
    idempotent: bool = False


class ActionRegistry:
    """Closed set of actions, keyed by name."""

    def __init__(self, specs: Iterable[ActionSpec] = ()):
        self._specs: Dict[str, ActionSpec] = {}
        for spec in specs:
            self.register(spec)

    def register(self, spec: ActionSpec):
        if spec.name in self._specs:
            raise ValueError(f"Action already registered: {spec.name}")
        if not callable(spec.executor) or not callable(spec.narrator):
            raise TypeError(f"Action {spec.name} needs both an executor and a narrator")
        if spec.capability not in (GMAIL, CALENDAR, DOCS):
            raise ValueError(f"Action {spec.name} has unknown capability: {spec.capability}")
        self._specs[spec.name] = spec

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    def names(self) -> List[str]:
        return list(self._specs)

    def get(self, name: str) -> ActionSpec:
        spec = self._specs.get(name)
        if spec is None:
            raise UnknownActionError(name)
        return spec

    def capability_for(self, name: str) -> str:
        return self.get(name).capability

    def is_idempotent(self, name: str) -> bool:
        return self.get(name).idempotent

    def parse(self, name: str, raw: Optional[Mapping[str, Any]]) -> ActionParams:
        """Validate raw classifier parameters for an action."""
        spec = self.get(name)
        return parse_parameters(name, spec.params_model, raw)

    def narrate(self, name: str, params: ActionParams) -> NarrationScript:
        return self.get(name).narrator(params)

    async def execute(
        self,
        name: str,
        params: Any,
        access_token: str,
        organizer: Organizer,
    ) -> str:
        """
        Run an action and return its prose result.

        Raw parameter maps are validated first; nothing reaches the external
        service when required fields are missing.
        """
        spec = self.get(name)
        if not isinstance(params, spec.params_model):
            params = parse_parameters(name, spec.params_model, params)

        ctx = ActionContext(
            access_token=access_token,
            organizer=organizer,
            timezone=settings.default_timezone,
        )

        start = time.perf_counter()
        logger.info(f"▶️  Executing action {name} ({spec.capability})")
        result = await spec.executor(params, ctx)
        logger.info(f"✅ Action {name} finished in {time.perf_counter() - start:.2f}s")
        return result

    def describe(self) -> str:
        """Action catalogue for the classification prompt (optional parameters marked with ?)."""
        lines = []
        for capability in (GMAIL, CALENDAR, DOCS):
            for spec in self._specs.values():
                if spec.capability == capability:
                    lines.append(
                        f"- {spec.name} [{capability}]: {spec.description} "
                        f"Parameters: {_parameter_summary(spec.params_model) or 'none'}"
                    )
        return "\n".join(lines)


def _parameter_summary(model: Type[ActionParams]) -> str:
    names = []
    for field_name, info in model.model_fields.items():
        alias = info.alias or field_name
        names.append(alias if info.is_required() else f"{alias}?")
    return ", ".join(names)


def build_default_registry() -> ActionRegistry:
    """Registry with every Gmail, Calendar and Docs action."""
    from src.agents.actions.calendar import CALENDAR_ACTIONS
    from src.agents.actions.docs import DOCS_ACTIONS
    from src.agents.actions.gmail import GMAIL_ACTIONS

    registry = ActionRegistry([*GMAIL_ACTIONS, *CALENDAR_ACTIONS, *DOCS_ACTIONS])
    logger.info(f"Action registry built with {len(registry)} actions")
    return registry
