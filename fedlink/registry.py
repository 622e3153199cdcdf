"""Lookup and dependency metadata for step definitions."""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional

from .errors import RegistryError, StepNotFoundError
from .steps import ALL_STEPS
from .steps.base import StepDefinition

logger = logging.getLogger(__name__)


class StepRegistry:
    """Immutable catalog of steps keyed by id.

    Building a registry validates the catalog: every prerequisite exists, the
    ``requires`` graph has no cycle, and every required output key is
    produced by some upstream step.
    """

    def __init__(self, definitions: Iterable[StepDefinition]) -> None:
        self._steps: Dict[str, StepDefinition] = {}
        for definition in definitions:
            if definition.id in self._steps:
                raise RegistryError(f"Duplicate step id: {definition.id}")
            self._steps[definition.id] = definition
        self._validate()
        logger.debug(f"Registered {len(self._steps)} steps")

    @classmethod
    def register(cls, definitions: Iterable[StepDefinition]) -> "StepRegistry":
        return cls(definitions)

    # ------------------------------------------------------------------
    # Lookup
    def get(self, step_id: str) -> StepDefinition:
        try:
            return self._steps[step_id]
        except KeyError:
            raise StepNotFoundError(step_id) from None

    def dependencies_of(self, step_id: str) -> FrozenSet[str]:
        return self.get(step_id).requires

    def dependents_of(self, step_id: str) -> List[str]:
        self.get(step_id)
        return [s.id for s in self._steps.values() if step_id in s.requires]

    def upstream_of(self, step_id: str) -> FrozenSet[str]:
        """Transitive closure of ``requires`` for ``step_id``."""

        seen: set[str] = set()
        stack = list(self.dependencies_of(step_id))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._steps[current].requires)
        return frozenset(seen)

    def producers_of(self, key: str) -> List[str]:
        key = str(key)
        return [s.id for s in self._steps.values() if key in s.produced_output_keys]

    def declared_order(self) -> List[str]:
        return list(self._steps)

    def topological_order(self) -> List[str]:
        """Dependency-respecting order, ties broken by declaration order."""

        remaining = {sid: set(s.requires) for sid, s in self._steps.items()}
        order: List[str] = []
        while remaining:
            ready = [sid for sid in self._steps if sid in remaining and not remaining[sid]]
            if not ready:
                raise RegistryError(f"Dependency cycle among: {', '.join(sorted(remaining))}")
            current = ready[0]
            order.append(current)
            del remaining[current]
            for deps in remaining.values():
                deps.discard(current)
        return order

    # ------------------------------------------------------------------
    def _validate(self) -> None:
        for step in self._steps.values():
            unknown = sorted(r for r in step.requires if r not in self._steps)
            if unknown:
                raise RegistryError(f"{step.id} requires unknown steps: {', '.join(unknown)}")

        self.topological_order()

        for step in self._steps.values():
            upstream = self.upstream_of(step.id)
            for key in step.required_output_keys:
                producers = self.producers_of(key)
                if not any(p in upstream for p in producers):
                    raise RegistryError(
                        f"{step.id} requires output '{key}' which no upstream step produces"
                    )

    # ------------------------------------------------------------------
    def __iter__(self) -> Iterator[StepDefinition]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps


_default_registry: Optional[StepRegistry] = None


def default_registry() -> StepRegistry:
    """Registry of the built-in federation steps, built once."""

    global _default_registry
    if _default_registry is None:
        _default_registry = StepRegistry.register(ALL_STEPS)
    return _default_registry
