"""現在アクティブなプロファイルの追跡。

- 一次: `current-profile.txt`（存在するプロファイルを指していれば信用する）
- 二次: live auth と各プロファイルの auth.json の内容ハッシュ比較
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

from claude_switch.config import SwitchConfig
from claude_switch.store import AUTH_FILE, ProfileStore

log = logging.getLogger(__name__)

NONE = "none"
UNKNOWN = "unknown"


def _digest(path: Path) -> str:
    return hashlib.md5(path.read_bytes()).hexdigest()


@dataclass
class CurrentProfileTracker:
    cfg: SwitchConfig
    store: ProfileStore

    def marker(self) -> str | None:
        p = self.cfg.marker_path
        if not p.exists():
            return None
        name = p.read_text(encoding="utf-8").strip()
        return name or None

    def get(self) -> str:
        tracked = self.marker()
        if tracked and self.store.exists(tracked):
            return tracked
        if tracked:
            log.debug("marker points to missing profile %s; falling back to hash", tracked)

        live = self.cfg.live_auth
        if not live.exists():
            return NONE

        current = _digest(live)
        for name in self.store.list():
            candidate = self.store.root / name / AUTH_FILE
            if candidate.is_file() and _digest(candidate) == current:
                return name
        return UNKNOWN

    def set(self, name: str) -> None:
        p = self.cfg.marker_path
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(f"{name}\n", encoding="utf-8")
        log.debug("current profile marker -> %s", name)
