"""
SlopShield Core
Shared types, content keys, configuration, errors and the preference store.
"""

from .errors import (
    SlopShieldError,
    ExtractionUnavailable,
    PixelAccessDenied,
    RemoteScorerUnreachable,
    MalformedInput,
    InvalidTransition,
    IrreversibleAnnotation,
)
from .types import ContentKind, ScoreSource, ScoreResult, FeatureVector
from .keys import text_key, image_key
from .store import PreferenceStore, MemoryPreferenceStore, JsonFilePreferenceStore
from .config import EngineConfig, RenderMode

__all__ = [
    'SlopShieldError',
    'ExtractionUnavailable',
    'PixelAccessDenied',
    'RemoteScorerUnreachable',
    'MalformedInput',
    'InvalidTransition',
    'IrreversibleAnnotation',
    'ContentKind',
    'ScoreSource',
    'ScoreResult',
    'FeatureVector',
    'text_key',
    'image_key',
    'PreferenceStore',
    'MemoryPreferenceStore',
    'JsonFilePreferenceStore',
    'EngineConfig',
    'RenderMode',
]
