"""プロファイル切替（Activation Engine）。

切替手順（この順番を守らないと資格情報が混ざる）:
1. 現在のプロファイルへ keychain トークンを書き戻す（ログイン中の refresh を拾う）
2. 対象プロファイルの auth.json を保証する
3. 認証モードを判定する
4. OAuth: auth を symlink、settings を削除、keychain を復元
   API key: keychain を削除、settings を symlink、auth を再生成（symlink にしない）
5. env.sh を再生成する
6. current-profile.txt を更新する

各 location は一時ファイル/一時 symlink を作ってから `os.replace` で差し替える。
symlink の先に書き込んでしまうことはない。location をまたいだロールバックは無い。
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from claude_switch.classify import AuthMode, classify
from claude_switch.config import SwitchConfig
from claude_switch.documents import AuthDocument, dump_json, load_auth
from claude_switch.envfile import write_env_file
from claude_switch.errors import (
    AdapterUnavailable,
    ContractViolation,
    NoCredential,
    NotFound,
    OperationCancelled,
    ProfileError,
)
from claude_switch.keychain import SecureStore
from claude_switch.store import Profile, ProfileStore
from claude_switch.tracker import NONE, UNKNOWN, CurrentProfileTracker

log = logging.getLogger(__name__)

Confirm = Callable[[str], bool]

LOGIN_HINT = "No saved keychain credentials. Run /login in Claude to authenticate."


@dataclass
class ActivationResult:
    name: str
    mode: AuthMode
    previous: str
    warnings: list[str] = field(default_factory=list)


def _tmp_sibling(path: Path) -> Path:
    return path.with_name(f".{path.name}.csw-tmp")


def _remove(path: Path) -> None:
    # dangling symlink も消す
    if path.is_symlink() or path.exists():
        path.unlink()


def replace_with_symlink(link: Path, target: Path) -> None:
    link.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_sibling(link)
    _remove(tmp)
    os.symlink(target.absolute(), tmp)
    os.replace(tmp, link)


def replace_with_file(path: Path, text: str, *, mode: int = 0o600) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _tmp_sibling(path)
    _remove(tmp)
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp, path)


def _never_running() -> bool:
    return False


@dataclass
class Activator:
    cfg: SwitchConfig
    store: ProfileStore
    keychain: SecureStore
    tracker: CurrentProfileTracker
    process_probe: Callable[[], bool] = _never_running
    confirm: Confirm | None = None

    def keychain_call(self, warnings: list[str], what: str, fn: Callable[[], object]) -> object:
        try:
            return fn()
        except AdapterUnavailable as e:
            msg = f"keychain {what} skipped: {e}"
            log.warning(msg)
            warnings.append(msg)
            return None

    def check_running(self) -> None:
        if not self.process_probe():
            return
        message = (
            "Claude Code is currently running. "
            "Switching profiles while Claude is running may cause issues. Continue anyway?"
        )
        if self.confirm is None or not self.confirm(message):
            raise OperationCancelled("cancelled: please close Claude first")

    def capture_outgoing(self, warnings: list[str]) -> str:
        """現在のプロファイルへ keychain トークンを退避し、その名前を返す。"""
        previous = self.tracker.get()
        # none / unknown は判定結果であってプロファイル名ではない（marker が指す場合を除く）
        if previous in (NONE, UNKNOWN) and self.tracker.marker() != previous:
            return previous
        if not self.store.exists(previous):
            return previous
        secret = self.keychain_call(warnings, "read", self.keychain.read)
        if isinstance(secret, str) and secret:
            self.store.write_blob(previous, secret)
            log.info("captured keychain credentials back into profile %s", previous)
        return previous

    def activate(
        self,
        name: str,
        *,
        skip_running_check: bool = False,
        allow_pending_login: bool = False,
    ) -> ActivationResult:
        if not skip_running_check:
            self.check_running()

        if not self.store.exists(name):
            raise NotFound(f"profile '{name}' not found", available=self.store.list())

        log.info("switching to profile %s", name)
        warnings: list[str] = []

        previous = self.capture_outgoing(warnings)
        self.store.ensure_auth(name)
        profile = self.store.read(name)

        mode = classify(profile)
        if mode is AuthMode.INVALID:
            if not allow_pending_login:
                raise NoCredential(
                    f"profile '{name}' has no usable credential "
                    "(no API key, no keychain backup, no OAuth session)"
                )
            # /login 待ち: 前アカウントのトークンで認証されないよう keychain を空にする
            self.keychain_call(warnings, "delete", self.keychain.delete)
            self._activate_oauth(profile, warnings)
            mode = AuthMode.OAUTH
        elif mode is AuthMode.OAUTH:
            self._activate_oauth(profile, warnings)
        else:
            self._activate_api_key(profile, warnings)

        write_env_file(self.cfg.env_file, name, profile.settings, self.cfg.unset_vars)
        self.tracker.set(name)

        log.info("switched to profile %s (mode=%s, previous=%s)", name, mode.value, previous)
        return ActivationResult(name=name, mode=mode, previous=previous, warnings=warnings)

    def _activate_oauth(self, profile: Profile, warnings: list[str]) -> None:
        replace_with_symlink(self.cfg.live_auth, self.store.auth_path(profile.name))
        _remove(self.cfg.live_settings)

        secret = self.store.read_blob(profile.name)
        if secret is None:
            log.warning("profile %s has no keychain backup", profile.name)
            warnings.append(LOGIN_HINT)
            return
        self.keychain_call(warnings, "restore", lambda: self.keychain.write(secret))

    def _activate_api_key(self, profile: Profile, warnings: list[str]) -> None:
        # keychain に OAuth トークンが残ると Claude がそちらを優先してしまう
        self.keychain_call(warnings, "delete", self.keychain.delete)

        settings_path = self.store.settings_path(profile.name)
        if profile.settings is None or not settings_path.exists():
            raise ContractViolation(
                f"profile '{profile.name}' is classified as API key but has no settings.json"
            )
        replace_with_symlink(self.cfg.live_settings, settings_path)

        api_key = profile.settings.api_key
        doc = self._regenerate_auth(api_key)
        # 以前の live auth が symlink でも、symlink ごと差し替える
        replace_with_file(self.cfg.live_auth, dump_json(doc.to_dict()))

    def _regenerate_auth(self, api_key: str | None) -> AuthDocument:
        live = self.cfg.live_auth
        if live.exists():
            try:
                return load_auth(live).for_api_key(api_key)
            except ProfileError as e:
                log.warning("could not transform live auth (%s); writing a minimal one", e)
        return AuthDocument().for_api_key(api_key)
