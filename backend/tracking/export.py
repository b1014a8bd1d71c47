"""
Export helpers for detection history (CSV and JSON) plus summary statistics.
"""
import csv
import io
import json
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

CSV_HEADERS = ['Timestamp', 'Type', 'Score', 'Confidence', 'Certainty', 'Domain', 'URL', 'Content Preview']


def _write(text: str, path: Optional[str]) -> str:
    if path:
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(text)
        logger.info(f"Exported detection history to {path}")
    return text


def export_csv(history: List[Dict[str, Any]], path: Optional[str] = None) -> str:
    """
    Render history as CSV. Quotes inside fields are doubled.

    Args:
        history: Entries as returned by DetectionHistory.get()
        path: Optional file to write the CSV to

    Returns:
        CSV text (empty string for an empty history)
    """
    if not history:
        return ''
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator='\n')
    writer.writerow(CSV_HEADERS)
    for entry in history:
        confidence = entry.get('confidence')
        writer.writerow([
            entry.get('timestamp', ''),
            entry.get('type', ''),
            entry.get('score', ''),
            '' if confidence is None else confidence,
            entry.get('certainty', ''),
            entry.get('domain', ''),
            entry.get('url', ''),
            entry.get('content') or '',
        ])
    return _write(buffer.getvalue(), path)


def export_json(history: List[Dict[str, Any]], path: Optional[str] = None) -> str:
    if not history:
        return ''
    return _write(json.dumps(history, indent=2, ensure_ascii=False), path)


def get_statistics(history: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Aggregate counts over a history list.

    Returns:
        dict with total, text, images, avgScore, avgCertainty,
        domains (count per domain) and byDate (count per YYYY-MM-DD)
    """
    stats = {
        'total': len(history or []),
        'text': 0,
        'images': 0,
        'avgScore': 0.0,
        'avgCertainty': 0.0,
        'domains': {},
        'byDate': {},
    }
    if not history:
        return stats

    total_score = 0.0
    total_certainty = 0.0
    for entry in history:
        if entry.get('type') == 'text':
            stats['text'] += 1
        elif entry.get('type') == 'image':
            stats['images'] += 1
        total_score += entry.get('score') or 0.0
        total_certainty += entry.get('certainty') or 0.0

        domain = entry.get('domain') or 'unknown'
        stats['domains'][domain] = stats['domains'].get(domain, 0) + 1
        timestamp = entry.get('timestamp')
        date = timestamp.split('T')[0] if timestamp else 'unknown'
        stats['byDate'][date] = stats['byDate'].get(date, 0) + 1

    stats['avgScore'] = total_score / stats['total']
    stats['avgCertainty'] = total_certainty / stats['total']
    return stats
