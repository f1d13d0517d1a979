"""Claude CLI が起動中かどうかの簡易チェック。

切替中に Claude が動いていると、Claude 側の書き込みと競合しうる。
`pgrep` が無い環境では「起動していない」とみなす（確認を出さないだけ）。
"""

from __future__ import annotations

import logging
import shutil
import subprocess

log = logging.getLogger(__name__)


def is_claude_running(patterns: list[str], *, timeout: float = 5.0) -> bool:
    if shutil.which("pgrep") is None:
        log.debug("pgrep not found; skipping running check")
        return False
    for pattern in patterns:
        try:
            result = subprocess.run(
                ["pgrep", "-f", pattern],
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            log.debug("pgrep failed for %s: %s", pattern, type(e).__name__)
            continue
        if result.returncode == 0:
            log.info("claude process detected (pattern=%s)", pattern)
            return True
    return False
