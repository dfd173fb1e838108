"""Choice contexts: which value was chosen from which amb node.

An ``AmbContext`` maps an amb node to the *index* of the value chosen from
it (not the value itself, so equal values drawn from one node stay
distinguishable).  Two contexts are compatible when they agree on every
node they share; nodes present in only one of them do not matter.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Iterator

from ambsheet.values import cell_name

if TYPE_CHECKING:
    from ambsheet.formulas.nodes import AmbNode


class AmbContext(Mapping):
    """Immutable mapping of amb node -> chosen index."""

    __slots__ = ("_choices",)

    def __init__(self, choices: dict[AmbNode, int] | None = None) -> None:
        self._choices: dict[AmbNode, int] = dict(choices) if choices else {}

    @classmethod
    def empty(cls) -> AmbContext:
        return cls()

    def __getitem__(self, node: AmbNode) -> int:
        return self._choices[node]

    def __iter__(self) -> Iterator[AmbNode]:
        return iter(self._choices)

    def __len__(self) -> int:
        return len(self._choices)

    def __hash__(self) -> int:
        return hash(frozenset(self._choices.items()))

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{_node_label(node)}: {idx}" for node, idx in self._choices.items()
        )
        return f"AmbContext({{{inner}}})"

    def extend(self, node: AmbNode, index: int) -> AmbContext:
        """Return a new context that also records ``node -> index``."""
        choices = dict(self._choices)
        choices[node] = index
        return AmbContext(choices)

    def is_compatible(self, other: AmbContext) -> bool:
        return contexts_compatible(self, other)

    def merge(self, other: AmbContext) -> AmbContext:
        """Union of two compatible contexts.

        Raises:
            ValueError: If the contexts disagree on a shared node.
        """
        if not other:
            return self
        if not self:
            return other
        if not contexts_compatible(self, other):
            raise ValueError("cannot merge incompatible contexts")
        choices = dict(self._choices)
        choices.update(other._choices)
        return AmbContext(choices)


def contexts_compatible(a: Mapping, b: Mapping) -> bool:
    """True iff no key present in both *a* and *b* maps to different indexes."""
    if len(b) < len(a):
        a, b = b, a
    for key, index in a.items():
        other = b.get(key)
        if other is not None and other != index:
            return False
    return True


# ---------------------------------------------------------------------------
# Name-resolved contexts
# ---------------------------------------------------------------------------


def _node_label(node: AmbNode) -> str:
    name = cell_name(node.pos)
    return name if node.ordinal == 0 else f"{name}#{node.ordinal}"


def resolve_positions(context: AmbContext) -> dict[str, int]:
    """Key a context by human-readable cell name instead of node identity.

    The first amb node of a cell is keyed by the cell name (``"B3"``);
    further amb nodes in the same formula get ``"B3#1"``, ``"B3#2"`` ...
    """
    return {_node_label(node): index for node, index in context.items()}


def resolved_contexts_compatible(a: dict[str, int], b: dict[str, int]) -> bool:
    return contexts_compatible(a, b)
