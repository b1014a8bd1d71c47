"""
SlopShield Remote Scoring Service
Flask application that scores derived feature vectors for the engine's
optional hybrid refinement.

Clients only ever send a content hash, a numeric feature vector and
coarse metadata; the service never sees the underlying text or image.
"""
import logging
import math
import threading
import time
from collections import OrderedDict

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from core.config import SERVER_PORT
from core.types import ScoreSource
from scoring import CLOUD, EnsembleScorer

logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)  # Extension and page contexts call from other origins

# Initialize rate limiter
limiter = Limiter(
    app=app,
    key_func=get_remote_address,
    default_limits=["1000 per hour"],
    storage_uri="memory://"
)

MODEL_VERSION = '1.0'
CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_MAX_SIZE = 10000

# Input validation constants
MAX_HASH_LENGTH = 128
MAX_FEATURES = 64


class TTLScoreCache:
    """
    Response cache keyed by content hash. Entries expire after ttl seconds;
    the oldest entry is dropped once max_size is reached.
    """

    def __init__(self, ttl: float = CACHE_TTL_SECONDS, max_size: int = CACHE_MAX_SIZE):
        self.ttl = ttl
        self.max_size = max_size
        self._entries = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            stored_at, value = entry
            if time.monotonic() - stored_at > self.ttl:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return dict(value)

    def put(self, key: str, value: dict):
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (time.monotonic(), dict(value))
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self.hits = 0
            self.misses = 0
            return count

    def get_cache_info(self) -> dict:
        """Get cache statistics."""
        with self._lock:
            return {
                'hits': self.hits,
                'misses': self.misses,
                'size': len(self._entries),
                'max_size': self.max_size,
                'ttl_seconds': self.ttl,
            }


scorer = EnsembleScorer()
score_cache = TTLScoreCache()


def validate_score_request(data) -> dict:
    """
    Validate a scoring request body.

    Returns:
        dict with 'valid' (bool), 'error' (str or None) and 'error_code'
    """
    if not isinstance(data, dict):
        return {'valid': False, 'error': 'Request body must be a JSON object', 'error_code': 'INVALID_JSON'}

    content_hash = data.get('contentHash', data.get('hash'))
    if not isinstance(content_hash, str) or not content_hash.strip():
        return {'valid': False, 'error': 'Missing "contentHash" field in request body', 'error_code': 'MISSING_HASH'}
    if len(content_hash) > MAX_HASH_LENGTH:
        return {'valid': False, 'error': f'contentHash too long (max {MAX_HASH_LENGTH} characters)',
                'error_code': 'INVALID_HASH'}

    features = data.get('features')
    if not isinstance(features, dict):
        return {'valid': False, 'error': 'Missing "features" object in request body', 'error_code': 'MISSING_FEATURES'}
    if len(features) > MAX_FEATURES:
        return {'valid': False, 'error': f'Too many features (max {MAX_FEATURES})', 'error_code': 'INVALID_FEATURES'}
    for name, value in features.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            return {'valid': False, 'error': f'Feature "{name}" must be a finite number',
                    'error_code': 'INVALID_FEATURES'}

    metadata = data.get('metadata')
    if metadata is not None and not isinstance(metadata, dict):
        return {'valid': False, 'error': '"metadata" must be an object', 'error_code': 'INVALID_METADATA'}

    return {'valid': True, 'error': None, 'error_code': None}


@app.route('/')
@app.route('/api/health')
def health_check():
    """Health check endpoint with cache status."""
    return jsonify({
        'status': 'ok',
        'service': 'SlopShield Scoring API',
        'version': '1.0.0',
        'modelVersion': MODEL_VERSION,
        'cache': score_cache.get_cache_info(),
        'endpoints': {
            'score': '/api/score (POST)',
            'cache_info': '/api/cache/info (GET)',
            'cache_clear': '/api/cache (DELETE)'
        }
    })


@app.route('/api/score', methods=['POST'])
@limiter.limit("120 per minute")
def score_features():
    """
    Score a derived feature vector.

    Request body:
        {
            "contentHash": "md5 of the content key",
            "features": {"char_entropy": 0.8, ...},
            "metadata": {"length": 512, "language": "en"}  (optional)
        }

    Response:
        {
            "success": true,
            "score": 0-1,
            "confidence": 0-1,
            "source": "cloud",
            "modelVersion": "1.0",
            "cached": false
        }
    """
    try:
        data = request.get_json(silent=True)

        validation = validate_score_request(data)
        if not validation['valid']:
            return jsonify({
                'success': False,
                'error': validation['error'],
                'error_code': validation['error_code']
            }), 400

        content_hash = data.get('contentHash', data.get('hash')).strip()
        cached = score_cache.get(content_hash)
        if cached is not None:
            cached['cached'] = True
            return jsonify(cached)

        result = scorer.score(data['features'], CLOUD, source=ScoreSource.REMOTE)
        response = {
            'success': True,
            'score': round(result.score, 4),
            'confidence': round(result.confidence, 4),
            'source': 'cloud',
            'modelVersion': MODEL_VERSION,
            'cached': False,
        }
        score_cache.put(content_hash, response)
        logger.debug(f"Scored {content_hash[:8]}: {response['score']} ({len(data['features'])} features)")
        return jsonify(response)

    except Exception as e:
        logger.error(f"Scoring request failed: {e}", exc_info=True)
        return jsonify({
            'success': False,
            'error': f'Internal server error: {str(e)}',
            'error_code': 'INTERNAL_ERROR'
        }), 500


@app.route('/api/cache/info', methods=['GET'])
def cache_info():
    return jsonify({'success': True, 'cache': score_cache.get_cache_info()})


@app.route('/api/cache', methods=['DELETE'])
@limiter.limit("10 per minute")
def clear_cache():
    cleared = score_cache.clear()
    logger.info(f"Score cache cleared ({cleared} entries)")
    return jsonify({'success': True, 'cleared': cleared})


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    logger.info(f"Starting SlopShield Scoring API Server on http://localhost:{SERVER_PORT}")
    app.run(debug=False, host='0.0.0.0', port=SERVER_PORT)
