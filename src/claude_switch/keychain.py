"""secure store（macOS keychain）アダプタ。

Claude CLI は OAuth 資格情報を login keychain の
(service="Claude Code-credentials", account="user") に保存する。
ここではその 1 スロットだけを扱う。

- macOS: `security` CLI を subprocess で呼ぶ
- それ以外: `NullKeychain`（常に「無し」。機能縮退モードでありエラーではない）

注意:
- 秘密情報はログに出さない
- `security` が無い / timeout は `AdapterUnavailable`。呼び出し側で warning に落とす
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from dataclasses import dataclass
from typing import Protocol

from claude_switch.config import SwitchConfig
from claude_switch.errors import AdapterUnavailable

log = logging.getLogger(__name__)


class SecureStore(Protocol):
    def exists(self) -> bool: ...

    def read(self) -> str | None: ...

    def write(self, secret: str) -> None: ...

    def delete(self) -> None: ...


@dataclass
class MacKeychain:
    service: str
    account: str
    timeout_seconds: float = 10.0
    binary: str = "security"

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        cmd = [self.binary, *args, "-s", self.service, "-a", self.account]
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise AdapterUnavailable(f"keychain CLI not found: {self.binary}") from e
        except subprocess.TimeoutExpired as e:
            raise AdapterUnavailable(
                f"keychain CLI timed out after {self.timeout_seconds}s: {args[0]}"
            ) from e

    def exists(self) -> bool:
        return self._run("find-generic-password").returncode == 0

    def read(self) -> str | None:
        proc = self._run("find-generic-password", "-w")
        if proc.returncode != 0:
            return None
        secret = proc.stdout
        if secret.endswith("\n"):
            secret = secret[:-1]
        return secret or None

    def write(self, secret: str) -> None:
        # add は既存エントリがあると失敗するので先に消す
        self.delete()
        proc = self._run("add-generic-password", "-w", secret)
        if proc.returncode != 0:
            raise AdapterUnavailable(
                f"keychain add failed (exit {proc.returncode}): {proc.stderr.strip()}"
            )
        log.info("keychain entry restored: service=%s", self.service)

    def delete(self) -> None:
        proc = self._run("delete-generic-password")
        if proc.returncode == 0:
            log.info("keychain entry deleted: service=%s", self.service)


class NullKeychain:
    """secure store が無いプラットフォーム用。"""

    def exists(self) -> bool:
        return False

    def read(self) -> str | None:
        return None

    def write(self, secret: str) -> None:
        log.debug("no secure store on this platform; keychain write skipped")

    def delete(self) -> None:
        log.debug("no secure store on this platform; keychain delete skipped")


def detect_keychain(cfg: SwitchConfig) -> SecureStore:
    mode = cfg.keychain.lower()
    if mode == "none":
        return NullKeychain()
    if mode == "macos" or (
        mode == "auto" and sys.platform == "darwin" and shutil.which("security") is not None
    ):
        return MacKeychain(
            service=cfg.keychain_service,
            account=cfg.keychain_account,
            timeout_seconds=cfg.keychain_timeout,
        )
    log.debug("keychain mode=%s platform=%s -> NullKeychain", mode, sys.platform)
    return NullKeychain()
