"""
Diagnostics sink: one JSON line per failed or skipped target, appended to
a per-day file (scraper-errors-YYYY-MM-DD.jsonl).
"""

import json
import logging
import os
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DiagnosticsSink:
    """Append-only JSONL error log."""

    def __init__(self, directory: str = 'logs', prefix: str = 'scraper-errors'):
        self.directory = directory
        self.prefix = prefix
        self._lock = threading.Lock()
        os.makedirs(directory, exist_ok=True)

    def path_for(self, day: Optional[datetime] = None) -> str:
        day = day or datetime.now()
        return os.path.join(self.directory, f"{self.prefix}-{day.strftime('%Y-%m-%d')}.jsonl")

    def record(self, session_id: Optional[str], postal_code: Optional[str], display_name: Optional[str],
               error_kind: str, error_message: str, source_url: Optional[str] = None,
               extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Append one entry.

        Returns:
            The entry as written
        """
        now = datetime.now()
        entry = {
            'timestamp': now.isoformat(),
            'session_id': session_id,
            'postal_code': postal_code,
            'display_name': display_name,
            'error_kind': error_kind,
            'error_message': error_message,
            'source_url': source_url,
        }
        if extra:
            entry['extra'] = extra

        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            with open(self.path_for(now), 'a', encoding='utf-8') as f:
                f.write(line + '\n')
        return entry

    def read(self, day: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Read back the entries of one day."""
        path = self.path_for(day)
        if not os.path.exists(path):
            return []
        with open(path, 'r', encoding='utf-8') as f:
            return [json.loads(line) for line in f if line.strip()]
