"""
Detection History
Logs every terminal detection for later export and keeps per-site settings.

Both live in the preference store: entries under HISTORY_KEY (newest
first, capped at max_entries) and site settings under SITE_SETTINGS_KEY,
which EngineConfig.from_store reads on every discovery batch.
"""
import hashlib
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from core.keys import domain_of
from core.types import ContentKind, ScoreResult

logger = logging.getLogger(__name__)

HISTORY_KEY = 'detection_history'
SITE_SETTINGS_KEY = 'site_settings'
MAX_HISTORY_ITEMS = 1000
CONTENT_PREVIEW_CHARS = 200
SITE_SETTING_FIELDS = ('whitelisted', 'blacklisted', 'sensitivity')


def calculate_certainty(score: float, confidence: Optional[float]) -> float:
    if confidence is None:
        return score
    return score * 0.7 + confidence * 0.3


class DetectionHistory:
    """
    Args:
        store: PreferenceStore the history and site settings are kept in
        max_entries: Oldest entries beyond this are dropped
    """

    def __init__(self, store, max_entries: int = MAX_HISTORY_ITEMS):
        self.store = store
        self.max_entries = max_entries

    def _load(self) -> List[Dict[str, Any]]:
        entries = self.store.get(HISTORY_KEY) or []
        return entries if isinstance(entries, list) else []

    def add(self, unit, result: ScoreResult, page_url: Optional[str] = None) -> Dict[str, Any]:
        """
        Log one detection.

        Args:
            unit: ClassificationUnit that reached a terminal state
            result: The ScoreResult the decision was made on
            page_url: URL of the page the unit was found on

        Returns:
            The stored entry
        """
        is_image = unit.kind is ContentKind.IMAGE
        timestamp = datetime.now().isoformat()
        content = None
        if not is_image and isinstance(unit.payload, str):
            content = unit.payload[:CONTENT_PREVIEW_CHARS]

        entry = {
            'id': hashlib.md5(f"{unit.id}{timestamp}".encode()).hexdigest()[:12],
            'timestamp': timestamp,
            'type': unit.kind.value,
            'state': unit.state.value,
            'score': round(result.score, 4),
            'confidence': round(result.confidence, 4),
            'certainty': round(calculate_certainty(result.score, result.confidence), 4),
            'source': result.source.value,
            'url': page_url or '',
            'domain': domain_of(page_url),
            'content': content,
            'isImage': is_image,
        }

        entries = self._load()
        entries.insert(0, entry)
        del entries[self.max_entries:]
        self.store.set(HISTORY_KEY, entries)
        return entry

    def get(self, limit: Optional[int] = None, filter_type: Optional[str] = None,
            domain: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Args:
            limit: Return at most this many entries
            filter_type: 'text' or 'image'
            domain: Only entries from this domain

        Returns:
            Entries, newest first
        """
        entries = self._load()
        if filter_type:
            entries = [e for e in entries if e.get('type') == filter_type]
        if domain:
            entries = [e for e in entries if e.get('domain') == domain]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def clear(self) -> None:
        self.store.set(HISTORY_KEY, [])
        logger.info("Detection history cleared")

    # ==================== SITE SETTINGS ====================

    def site_settings(self, domain: str) -> Optional[Dict[str, Any]]:
        settings = self.store.get(SITE_SETTINGS_KEY) or {}
        return settings.get(domain)

    def update_site_settings(self, domain: str, **changes) -> Dict[str, Any]:
        """
        Merge changes into the settings for one domain.

        Args:
            domain: Bare hostname (a leading www. is stripped)
            **changes: whitelisted, blacklisted and/or sensitivity

        Returns:
            The domain's settings after the update

        Raises:
            ValueError: unknown setting or sensitivity outside [0, 1]
        """
        unknown = set(changes) - set(SITE_SETTING_FIELDS)
        if unknown:
            raise ValueError(f"Unknown site settings: {sorted(unknown)}")
        sensitivity = changes.get('sensitivity')
        if sensitivity is not None and not 0.0 <= float(sensitivity) <= 1.0:
            raise ValueError(f"sensitivity must be within [0, 1], got {sensitivity}")

        domain = domain_of(domain) or domain
        all_settings = self.store.get(SITE_SETTINGS_KEY) or {}
        current = dict(all_settings.get(domain) or {})
        current.update(changes)
        all_settings[domain] = current
        self.store.set(SITE_SETTINGS_KEY, all_settings)
        return current

    def is_whitelisted(self, domain: str) -> bool:
        return bool((self.site_settings(domain) or {}).get('whitelisted'))

    def is_blacklisted(self, domain: str) -> bool:
        return bool((self.site_settings(domain) or {}).get('blacklisted'))
