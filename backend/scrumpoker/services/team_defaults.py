import json
import os
import threading
from typing import Any, Dict, Optional

from scrumpoker.errors import PersistenceError, ValidationError

# Keys a team may store, in their wire form
DEFAULT_KEYS = ('name', 'cardSet', 'customCards', 'cardHelp', 'templates')


class TeamDefaultsStore:
    """Team key -> room defaults, kept in memory and flushed to a JSON file.

    The file is optional: a missing file means no team has stored defaults
    yet. Read/write failures raise PersistenceError and leave the
    in-memory copy as it was.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._defaults: Dict[str, Dict[str, Any]] = {}
        self._dirty = False
        self._lock = threading.Lock()

    def load(self) -> int:
        if not self.path or not os.path.exists(self.path):
            return 0
        try:
            with open(self.path, 'r', encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            raise PersistenceError(f'Could not read team defaults: {exc}') from exc
        if not isinstance(data, dict):
            raise PersistenceError('Team defaults file must hold a JSON object')
        with self._lock:
            self._defaults = {str(k): v for k, v in data.items() if isinstance(v, dict)}
            self._dirty = False
            return len(self._defaults)

    def save(self, force: bool = False) -> bool:
        """Write the defaults if they changed since the last load/save."""
        with self._lock:
            if not self.path or not (self._dirty or force):
                return False
            snapshot = json.dumps(self._defaults, indent=2)
            tmp_path = f'{self.path}.tmp'
            try:
                with open(tmp_path, 'w', encoding='utf-8') as fh:
                    fh.write(snapshot)
                os.replace(tmp_path, self.path)
            except OSError as exc:
                raise PersistenceError(f'Could not write team defaults: {exc}') from exc
            self._dirty = False
            return True

    def get(self, team_key) -> Optional[Dict[str, Any]]:
        if not team_key:
            return None
        with self._lock:
            found = self._defaults.get(str(team_key))
            return dict(found) if found else None

    def put(self, team_key, updates: Dict[str, Any]) -> Dict[str, Any]:
        if not team_key:
            raise ValidationError('Team key is required')
        if not isinstance(updates, dict):
            raise ValidationError('Team defaults must be an object')
        cleaned = {k: updates[k] for k in DEFAULT_KEYS if updates.get(k) is not None}
        if 'customCards' in cleaned:
            if not isinstance(cleaned['customCards'], list):
                raise ValidationError('customCards must be a list')
            cleaned['customCards'] = [str(c) for c in cleaned['customCards']]
        for key in ('cardHelp', 'templates'):
            if key in cleaned and not isinstance(cleaned[key], dict):
                raise ValidationError(f'{key} must be an object')
        with self._lock:
            merged = dict(self._defaults.get(str(team_key), {}))
            merged.update(cleaned)
            self._defaults[str(team_key)] = merged
            self._dirty = True
            return dict(merged)

    @property
    def dirty(self) -> bool:
        return self._dirty

    def __len__(self):
        return len(self._defaults)
