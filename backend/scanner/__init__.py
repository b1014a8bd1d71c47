"""
SlopShield Scanner
Discovery, quick scoring and bounded asynchronous refinement of page content.
"""

from .coordinator import ScanCoordinator, create_coordinator

__all__ = [
    'ScanCoordinator',
    'create_coordinator',
]
