"""
SlopShield Annotation Module
Per-unit classification state machine and the annotation renderer.
"""

from .unit import (
    ClassificationUnit,
    UnitState,
    Annotation,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    decide_refinement,
    passes_threshold,
    apply_context_boost,
)
from .surface import AnnotationSurface, InMemorySurface
from .renderer import AnnotationRenderer, RenderSettings, certainty, badge_text

__all__ = [
    'ClassificationUnit',
    'UnitState',
    'Annotation',
    'ALLOWED_TRANSITIONS',
    'TERMINAL_STATES',
    'decide_refinement',
    'passes_threshold',
    'apply_context_boost',
    'AnnotationSurface',
    'InMemorySurface',
    'AnnotationRenderer',
    'RenderSettings',
    'certainty',
    'badge_text',
]
