"""
Content keys: short fingerprints used for caching and as the remote content hash.

Text keys hash a bounded prefix only, so two texts sharing their first
TEXT_KEY_PREFIX characters share a cache slot.
"""
import hashlib
import re
from typing import Optional
from urllib.parse import urlparse

TEXT_KEY_PREFIX = 200
IMAGE_SRC_PREFIX = 150

_WHITESPACE = re.compile(r'\s+')


def normalize_text(text: str) -> str:
    return _WHITESPACE.sub(' ', text or '').strip()


def text_key(text: str) -> str:
    prefix = normalize_text(text)[:TEXT_KEY_PREFIX]
    return hashlib.md5(prefix.encode('utf-8')).hexdigest()


def image_key(src: str, width: Optional[int] = None, height: Optional[int] = None) -> str:
    raw = f"{(src or '')[:IMAGE_SRC_PREFIX]}_{width or 0}_{height or 0}"
    return hashlib.md5(raw.encode('utf-8')).hexdigest()


def domain_of(url: Optional[str]) -> str:
    """Hostname without a leading www., or '' when the URL has none."""
    if not url:
        return ''
    host = urlparse(url if '//' in url else f'//{url}').hostname or ''
    return host[4:] if host.startswith('www.') else host
