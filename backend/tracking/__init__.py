"""
SlopShield Tracking
Detection history, exports and analytics.
"""

from .analytics import Analytics, TelemetrySink, METRICS_KEY
from .history import DetectionHistory, HISTORY_KEY, SITE_SETTINGS_KEY
from .export import export_csv, export_json, get_statistics

__all__ = [
    'Analytics',
    'TelemetrySink',
    'METRICS_KEY',
    'DetectionHistory',
    'HISTORY_KEY',
    'SITE_SETTINGS_KEY',
    'export_csv',
    'export_json',
    'get_statistics',
]
