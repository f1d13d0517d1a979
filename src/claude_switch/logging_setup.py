"""logging の初期化。

- 詳細ログ: `~/.claude/logs/claude-switch.log`
- 人間向けの出力は CLI（rich）が担当する

目的:
- 切替・keychain 操作の経緯を後から追えるようにする（秘密情報は出さない）
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_logging(*, log_dir: Path, level: str = "INFO") -> None:
    # 既に設定済みなら二重設定しない
    if getattr(setup_logging, "_configured", False):
        return

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "claude-switch.log"

    if os.environ.get("DEBUG"):
        level = "DEBUG"
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = RotatingFileHandler(
        log_path,
        maxBytes=2_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    setup_logging._configured = True  # type: ignore[attr-defined]
