"""
Session-to-conversation mapping store.

Maps a chat thread (its thread key) to the tmux session it drives. Mappings
are kept in memory and persisted to a JSON file after every change.
"""

import json
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional


@dataclass
class SessionMapping:
    """One chat thread bound to one tmux session"""
    thread_key: str
    tmux_session: str
    channel_id: str
    created_at: datetime
    last_activity: datetime

    def to_dict(self):
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        data["last_activity"] = self.last_activity.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionMapping":
        return cls(
            thread_key=data["thread_key"],
            tmux_session=data["tmux_session"],
            channel_id=data["channel_id"],
            created_at=datetime.fromisoformat(data["created_at"]),
            last_activity=datetime.fromisoformat(data["last_activity"]),
        )


class SessionMappingStore:
    """JSON-file backed thread -> tmux session mappings"""

    def __init__(self, mapping_file: str = "sessions.json"):
        self.mapping_file = Path(mapping_file).resolve()
        self._mappings: Dict[str, SessionMapping] = {}
        self._lock = threading.RLock()
        self.logger = logging.getLogger(__name__)

    def load(self):
        """Load mappings from disk; a missing file starts an empty store"""
        with self._lock:
            try:
                with open(self.mapping_file, 'r', encoding='utf-8') as f:
                    raw = json.load(f)
            except FileNotFoundError:
                self.logger.info("No existing session mapping file found, starting fresh")
                return
            except json.JSONDecodeError as e:
                self.logger.error(f"Session mapping file {self.mapping_file} is corrupt: {e}")
                return

            self._mappings.clear()
            for entry in raw:
                try:
                    mapping = SessionMapping.from_dict(entry)
                except (KeyError, TypeError, ValueError) as e:
                    self.logger.warning(f"Skipping invalid session mapping {entry!r}: {e}")
                    continue
                self._mappings[mapping.thread_key] = mapping

            self.logger.info(f"Loaded {len(self._mappings)} session mappings")

    def save(self):
        """Write all mappings to disk atomically"""
        with self._lock:
            data = [mapping.to_dict() for mapping in self._mappings.values()]
            temp_path = self.mapping_file.with_suffix('.tmp')
            try:
                self.mapping_file.parent.mkdir(parents=True, exist_ok=True)
                with open(temp_path, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)

                # Atomic rename
                temp_path.replace(self.mapping_file)
                self.logger.debug(f"Saved {len(data)} session mappings")

            except OSError as e:
                self.logger.error(f"Failed to save session mappings: {e}")
                if temp_path.exists():
                    temp_path.unlink()

    def create(self, thread_key: str, tmux_session: str, channel_id: str) -> SessionMapping:
        now = datetime.now()
        mapping = SessionMapping(
            thread_key=thread_key,
            tmux_session=tmux_session,
            channel_id=channel_id,
            created_at=now,
            last_activity=now,
        )
        with self._lock:
            self._mappings[thread_key] = mapping
            self.save()
        self.logger.info(f"Mapped thread {thread_key} to tmux session {tmux_session}")
        return mapping

    def lookup(self, thread_key: str) -> Optional[SessionMapping]:
        with self._lock:
            return self._mappings.get(thread_key)

    def record_activity(self, thread_key: str):
        with self._lock:
            mapping = self._mappings.get(thread_key)
            if mapping:
                mapping.last_activity = datetime.now()
                self.save()

    def remove(self, thread_key: str) -> bool:
        with self._lock:
            if self._mappings.pop(thread_key, None) is None:
                return False
            self.save()
        self.logger.info(f"Removed mapping for thread {thread_key}")
        return True

    def all(self) -> List[SessionMapping]:
        with self._lock:
            return list(self._mappings.values())

    def threads_for_session(self, tmux_session: str) -> List[str]:
        with self._lock:
            return [m.thread_key for m in self._mappings.values() if m.tmux_session == tmux_session]

    def cleanup_inactive(self, max_inactive_minutes: int = 60) -> int:
        """Remove mappings idle longer than max_inactive_minutes; returns how many"""
        cutoff = datetime.now() - timedelta(minutes=max_inactive_minutes)
        with self._lock:
            stale = [key for key, m in self._mappings.items() if m.last_activity < cutoff]
            for key in stale:
                del self._mappings[key]
            if stale:
                self.save()

        if stale:
            self.logger.info(f"Cleaned up {len(stale)} inactive session mappings")
        return len(stale)
