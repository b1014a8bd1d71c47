"""
Annotation surface port.

The renderer never touches a real page; it talks to an AnnotationSurface.
InMemorySurface stands in for the DOM: each node id maps to its current
markup, and badges are tracked separately so they never alter content.
"""
import logging
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class AnnotationSurface(Protocol):
    def read(self, node_id: str) -> Optional[str]: ...

    def write(self, node_id: str, content: str) -> None: ...

    def remove(self, node_id: str) -> None: ...

    def set_badge(self, node_id: str, text: str) -> None: ...

    def clear_badge(self, node_id: str) -> None: ...


class InMemorySurface:
    """Dict-backed rendering surface."""

    def __init__(self, nodes: Optional[Dict[str, str]] = None):
        self.nodes: Dict[str, str] = dict(nodes or {})
        self.badges: Dict[str, str] = {}
        self.removed: Dict[str, str] = {}

    def add(self, node_id: str, content: str) -> None:
        self.nodes[node_id] = content

    def read(self, node_id: str) -> Optional[str]:
        return self.nodes.get(node_id)

    def write(self, node_id: str, content: str) -> None:
        self.nodes[node_id] = content
        self.removed.pop(node_id, None)

    def remove(self, node_id: str) -> None:
        if node_id in self.nodes:
            self.removed[node_id] = self.nodes.pop(node_id)
        self.badges.pop(node_id, None)

    def set_badge(self, node_id: str, text: str) -> None:
        self.badges[node_id] = text

    def clear_badge(self, node_id: str) -> None:
        self.badges.pop(node_id, None)
