"""
Classification unit state machine.

One ClassificationUnit per discovered text block or image. Its state only
moves through transition(), which enforces the allowed edges below and can
additionally check the state the caller expects to find.

    UNSCANNED ──> QUICK_SCORED ──> ANNOTATED ──> REFINING ──> CONFIRMED
        │              │                            ^  │ └──> UPGRADED
        │              └──> SUPPRESSED ─────────────┘  └───> REVERTED
        └──────────────────> SUPPRESSED   (isolated per-unit failure)

SUPPRESSED -> REFINING is only taken when false-negative refinement is
enabled. CONFIRMED, UPGRADED, REVERTED and SUPPRESSED are terminal for one
discovery.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from core.errors import InvalidTransition
from core.keys import domain_of
from core.types import ContentKind, ScoreResult, clamp

logger = logging.getLogger(__name__)


class UnitState(str, Enum):
    UNSCANNED = 'unscanned'
    QUICK_SCORED = 'quick_scored'
    SUPPRESSED = 'suppressed'
    ANNOTATED = 'annotated'
    REFINING = 'refining'
    CONFIRMED = 'confirmed'
    UPGRADED = 'upgraded'
    REVERTED = 'reverted'


class Annotation(str, Enum):
    NONE = 'none'
    BLURRED = 'blurred'
    OUTLINED = 'outlined'
    REMOVED = 'removed'

    @property
    def reversible(self) -> bool:
        return self in (Annotation.BLURRED, Annotation.OUTLINED)


ALLOWED_TRANSITIONS: Dict[UnitState, FrozenSet[UnitState]] = {
    UnitState.UNSCANNED: frozenset({UnitState.QUICK_SCORED, UnitState.SUPPRESSED}),
    UnitState.QUICK_SCORED: frozenset({UnitState.SUPPRESSED, UnitState.ANNOTATED}),
    UnitState.ANNOTATED: frozenset({UnitState.REFINING}),
    UnitState.SUPPRESSED: frozenset({UnitState.REFINING}),
    UnitState.REFINING: frozenset({UnitState.CONFIRMED, UnitState.UPGRADED, UnitState.REVERTED}),
    UnitState.CONFIRMED: frozenset(),
    UnitState.UPGRADED: frozenset(),
    UnitState.REVERTED: frozenset(),
}

TERMINAL_STATES = frozenset({
    UnitState.SUPPRESSED, UnitState.CONFIRMED, UnitState.UPGRADED, UnitState.REVERTED,
})


@dataclass(eq=False)
class ClassificationUnit:
    """
    One discovered content item.

    Attributes:
        id: Stable id of the underlying node
        kind: ContentKind.TEXT or ContentKind.IMAGE
        key: ContentKey used for caching and as the remote content hash
        payload: Text or ImagePayload, kept locally for refinement
        state: Current UnitState
        quick_result / refined_result: ScoreResults from each stage
        annotation: Visual treatment currently applied
        alive: Cleared when the node leaves the page; late results are dropped
    """
    id: str
    kind: ContentKind
    key: str
    payload: Any = None
    state: UnitState = UnitState.UNSCANNED
    quick_result: Optional[ScoreResult] = None
    refined_result: Optional[ScoreResult] = None
    annotation: Annotation = Annotation.NONE
    alive: bool = True
    history: list = field(default_factory=list, repr=False)

    def can_transition(self, target: UnitState) -> bool:
        return target in ALLOWED_TRANSITIONS[self.state]

    def transition(self, target: UnitState, expected: Optional[Iterable[UnitState]] = None) -> None:
        """
        Move to target.

        Args:
            target: Next state
            expected: States the caller believes the unit is in; a mismatch
                      raises InvalidTransition just like a disallowed edge

        Raises:
            InvalidTransition
        """
        if expected is not None and self.state not in set(expected):
            raise InvalidTransition(self.id, self.state.value, target.value)
        if not self.can_transition(target):
            raise InvalidTransition(self.id, self.state.value, target.value)
        logger.debug(f"Unit {self.id}: {self.state.value} -> {target.value}")
        self.history.append(self.state)
        self.state = target

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def best_result(self) -> Optional[ScoreResult]:
        return self.refined_result or self.quick_result


def decide_refinement(unit: ClassificationUnit, refined: ScoreResult, threshold: float,
                      tolerance: float = 0.15, min_confidence: float = 0.0) -> UnitState:
    """
    Pick the terminal state for a unit whose refinement just finished.

    Args:
        unit: Unit in REFINING
        refined: Refined ScoreResult
        threshold: Active threshold for the unit's kind
        tolerance: Largest quick/refined gap still treated as agreement
        min_confidence: Refined results below this carry no new information

    Returns:
        CONFIRMED, UPGRADED or REVERTED
    """
    quick_score = unit.quick_result.score if unit.quick_result is not None else 0.0

    if refined.confidence < min_confidence:
        return UnitState.CONFIRMED
    if unit.annotation is Annotation.NONE:
        # Any crossing counts as a fresh annotation, however small the gap
        return UnitState.UPGRADED if refined.score >= threshold else UnitState.CONFIRMED
    if abs(refined.score - quick_score) <= tolerance:
        return UnitState.CONFIRMED

    if refined.score >= threshold:
        return UnitState.CONFIRMED
    if not unit.annotation.reversible:
        logger.info(f"Unit {unit.id}: refinement disagrees but removal is permanent")
        return UnitState.CONFIRMED
    return UnitState.REVERTED


def passes_threshold(result: ScoreResult, threshold: float, min_confidence: float = 0.0) -> bool:
    return result.score >= threshold and result.confidence >= min_confidence


def apply_context_boost(score: float, page_url: Optional[str], allowlist: Iterable[str],
                        floor: float = 0.15, factor: float = 1.10) -> float:
    """
    Raise a score on pages that are known AI-content generators.

    Only scores already at or above floor are boosted, the factor is capped
    at 1.10 and the result is clamped to [0, 1].
    """
    factor = min(max(factor, 1.0), 1.10)
    if score < floor or not page_url:
        return score
    domain = domain_of(page_url)
    if not domain:
        return score
    for allowed in allowlist:
        allowed = allowed.lower()
        if domain == allowed or domain.endswith('.' + allowed):
            return clamp(score * factor)
    return score
