"""
SlopShield Annotation Renderer
Applies and removes the visual treatment for classified units.

The renderer makes no decisions. It is told what to do by the coordinator
and receives the render settings explicitly on every call, so a settings
change mid-refinement cannot leak into a half-finished annotation.

Treatments:
- BLUR: wrap content in a blurred container with a reveal control
- OUTLINE: wrap content in a highlighted container
- REMOVE: take the node off the surface (permanent)
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from core.config import BLUR_PX, RenderMode
from core.errors import IrreversibleAnnotation
from core.types import ScoreResult

from .surface import AnnotationSurface
from .unit import Annotation, ClassificationUnit

logger = logging.getLogger(__name__)

_MODE_TO_ANNOTATION = {
    RenderMode.BLUR: Annotation.BLURRED,
    RenderMode.OUTLINE: Annotation.OUTLINED,
    RenderMode.REMOVE: Annotation.REMOVED,
}


@dataclass(frozen=True)
class RenderSettings:
    mode: RenderMode = RenderMode.BLUR
    show_certainty: bool = False
    blur_px: int = BLUR_PX

    @classmethod
    def from_config(cls, config) -> 'RenderSettings':
        return cls(mode=config.mode, show_certainty=config.show_certainty)


def certainty(score: float, confidence: Optional[float] = None) -> float:
    """Presentational blend shown on the badge; never fed back into scoring."""
    if confidence is None:
        return score
    return score * 0.7 + confidence * 0.3


def badge_text(result: ScoreResult) -> str:
    return f"AI {round(certainty(result.score, result.confidence) * 100)}%"


class AnnotationRenderer:
    """
    Args:
        surface: AnnotationSurface the treatments are written to
    """

    def __init__(self, surface: AnnotationSurface):
        self.surface = surface
        self._originals: Dict[str, str] = {}

    def apply(self, unit: ClassificationUnit, settings: RenderSettings,
              result: Optional[ScoreResult] = None) -> bool:
        """
        Annotate a unit. Calling it on an already annotated unit does nothing.

        Returns:
            True when a treatment was applied by this call
        """
        if unit.annotation is not Annotation.NONE:
            return False

        original = self.surface.read(unit.id)
        if original is None:
            logger.debug(f"Unit {unit.id} has no node on the surface, skipping annotation")
            return False

        self._originals[unit.id] = original
        if settings.mode is RenderMode.REMOVE:
            self.surface.remove(unit.id)
        else:
            self.surface.write(unit.id, self._wrap(unit.id, original, settings))
            if settings.show_certainty and result is not None:
                self.surface.set_badge(unit.id, badge_text(result))

        unit.annotation = _MODE_TO_ANNOTATION[settings.mode]
        logger.debug(f"Unit {unit.id} annotated as {unit.annotation.value}")
        return True

    def revert(self, unit: ClassificationUnit) -> bool:
        """
        Restore a unit's original content exactly.

        Returns:
            True when content was restored, False when there was nothing to undo

        Raises:
            IrreversibleAnnotation: the unit's content was removed
        """
        if unit.annotation is Annotation.NONE:
            return False
        if unit.annotation is Annotation.REMOVED:
            raise IrreversibleAnnotation(f"Unit {unit.id} was removed and cannot be restored")

        original = self._originals.pop(unit.id, None)
        if original is None:
            logger.warning(f"No snapshot for unit {unit.id}, cannot revert")
            return False
        self.surface.write(unit.id, original)
        self.surface.clear_badge(unit.id)
        unit.annotation = Annotation.NONE
        return True

    def update_badge(self, unit: ClassificationUnit, result: ScoreResult,
                     settings: RenderSettings) -> None:
        if not settings.show_certainty or not unit.annotation.reversible:
            return
        self.surface.set_badge(unit.id, badge_text(result))

    def forget(self, unit_id: str) -> None:
        self._originals.pop(unit_id, None)

    def original_content(self, unit_id: str) -> Optional[str]:
        return self._originals.get(unit_id)

    @staticmethod
    def _wrap(unit_id: str, content: str, settings: RenderSettings) -> str:
        node = html.escape(unit_id, quote=True)
        if settings.mode is RenderMode.BLUR:
            return (
                f'<div class="slopshield-blur" data-slopshield-id="{node}" '
                f'style="filter: blur({settings.blur_px}px)">{content}</div>'
                f'<button class="slopshield-reveal" data-slopshield-id="{node}">'
                f'Likely AI-generated. Show anyway</button>'
            )
        return (
            f'<div class="slopshield-outline" data-slopshield-id="{node}" '
            f'style="outline: 3px solid #e53935; outline-offset: 2px">{content}</div>'
        )
