"""プロファイルストア。

レイアウト（`~/.claude/profiles/<name>/`）:
- auth.json                 認証ドキュメント
- settings.json             任意。env / model
- keychain-credentials.b64  任意。keychain から退避した OAuth トークン

ストアは Live Configuration には触らない（`capture_from_live` の読み取りを除く）。
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from claude_switch.config import SwitchConfig
from claude_switch.documents import (
    AuthDocument,
    SettingsDocument,
    dump_json,
    load_auth,
    load_settings,
)
from claude_switch.errors import AlreadyExists, DocumentError, InvalidProfileName, NotFound

log = logging.getLogger(__name__)

AUTH_FILE = "auth.json"
SETTINGS_FILE = "settings.json"
BLOB_FILE = "keychain-credentials.b64"


@dataclass
class Profile:
    name: str
    path: Path
    auth: AuthDocument | None = None
    settings: SettingsDocument | None = None
    has_blob: bool = False


def validate_name(name: str) -> str:
    """ディレクトリ名として安全なプロファイル名か確認する。"""
    if not name or not name.strip():
        raise InvalidProfileName("profile name is required")
    if name in (".", "..") or name.startswith("."):
        raise InvalidProfileName(f"invalid profile name: {name!r}")
    if "/" in name or "\\" in name or "\0" in name:
        raise InvalidProfileName(f"profile name must not contain path separators: {name!r}")
    return name


def _write_private(path: Path, text: str) -> None:
    path.write_text(text, encoding="utf-8")
    os.chmod(path, 0o600)


@dataclass
class ProfileStore:
    cfg: SwitchConfig

    @property
    def root(self) -> Path:
        return self.cfg.profiles_dir

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.cfg.backups_dir.mkdir(parents=True, exist_ok=True)

    def profile_dir(self, name: str) -> Path:
        return self.root / validate_name(name)

    def auth_path(self, name: str) -> Path:
        return self.profile_dir(name) / AUTH_FILE

    def settings_path(self, name: str) -> Path:
        return self.profile_dir(name) / SETTINGS_FILE

    def blob_path(self, name: str) -> Path:
        return self.profile_dir(name) / BLOB_FILE

    def list(self) -> list[str]:
        if not self.root.is_dir():
            return []
        return sorted(
            p.name for p in self.root.iterdir() if p.is_dir() and not p.name.startswith(".")
        )

    def exists(self, name: str) -> bool:
        try:
            return self.profile_dir(name).is_dir()
        except InvalidProfileName:
            return False

    def _require(self, name: str) -> Path:
        d = self.profile_dir(name)
        if not d.is_dir():
            raise NotFound(f"profile '{name}' not found", available=self.list())
        return d

    def create(self, name: str) -> Profile:
        d = self.profile_dir(name)
        if d.exists():
            raise AlreadyExists(f"profile '{name}' already exists")
        d.mkdir(parents=True)
        _write_private(d / AUTH_FILE, "{}\n")
        log.info("profile created: %s", name)
        return Profile(name=name, path=d, auth=AuthDocument())

    def read(self, name: str) -> Profile:
        d = self._require(name)
        auth_p = d / AUTH_FILE
        settings_p = d / SETTINGS_FILE
        return Profile(
            name=name,
            path=d,
            auth=load_auth(auth_p) if auth_p.exists() else None,
            settings=load_settings(settings_p) if settings_p.exists() else None,
            has_blob=self.read_blob(name) is not None,
        )

    def ensure_auth(self, name: str) -> bool:
        """auth.json が無ければ `{}` で作る。作ったら True。"""
        p = self._require(name) / AUTH_FILE
        if p.exists():
            return False
        _write_private(p, "{}\n")
        log.warning("profile %s had no auth.json; created an empty one", name)
        return True

    def write_auth(self, name: str, doc: AuthDocument) -> None:
        _write_private(self._require(name) / AUTH_FILE, dump_json(doc.to_dict()))

    def write_settings(self, name: str, doc: SettingsDocument) -> None:
        _write_private(self._require(name) / SETTINGS_FILE, dump_json(doc.to_dict()))

    def read_blob(self, name: str) -> str | None:
        p = self._require(name) / BLOB_FILE
        if not p.exists():
            return None
        try:
            # base64 CLI の 76 桁折り返しも受け付ける
            encoded = "".join(p.read_text(encoding="ascii").split())
            if not encoded:
                return None
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise DocumentError(f"corrupt keychain backup in profile '{name}': {p}") from e

    def write_blob(self, name: str, secret: str) -> None:
        encoded = base64.b64encode(secret.encode("utf-8")).decode("ascii")
        _write_private(self._require(name) / BLOB_FILE, encoded + "\n")
        log.debug("keychain credentials stored in profile %s", name)

    def remove_blob(self, name: str) -> None:
        (self._require(name) / BLOB_FILE).unlink(missing_ok=True)

    def delete(self, name: str) -> None:
        d = self._require(name)
        shutil.rmtree(d)
        log.info("profile deleted: %s", name)

    def move_settings_aside(self, name: str) -> Path:
        src = self._require(name) / SETTINGS_FILE
        dst = src.with_name(f"{SETTINGS_FILE}.corrupted-{int(time.time())}")
        src.rename(dst)
        log.warning("profile %s: moved settings.json to %s", name, dst.name)
        return dst

    def capture_from_live(
        self,
        name: str,
        *,
        include_settings: bool = True,
        overwrite: bool = False,
    ) -> Profile:
        """Live Configuration の auth（と settings）をそのままコピーする。"""
        live_auth = self.cfg.live_auth
        if not live_auth.exists():
            raise NotFound(f"no Claude auth found at {live_auth}")

        d = self.profile_dir(name)
        if d.exists() and not overwrite:
            raise AlreadyExists(f"profile '{name}' already exists")
        d.mkdir(parents=True, exist_ok=True)

        _copy_bytes(live_auth, d / AUTH_FILE)

        live_settings = self.cfg.live_settings
        if include_settings and live_settings.exists():
            _copy_bytes(live_settings, d / SETTINGS_FILE)
        elif not include_settings and (d / SETTINGS_FILE).exists():
            # 上書き保存で古い settings が残ると分類が狂う
            if not _same_file(live_settings, d / SETTINGS_FILE):
                (d / SETTINGS_FILE).unlink()

        log.info("captured live configuration into profile %s", name)
        return self.read(name)

    def snapshot_originals(self) -> bool:
        """初回のみ、元の auth/settings を backups/ に退避する。"""
        auth_backup = self.cfg.backups_dir / "original-auth.json"
        if auth_backup.exists() or not self.cfg.live_auth.exists():
            return False
        self.cfg.backups_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(self.cfg.live_auth, auth_backup)
        if self.cfg.live_settings.exists():
            shutil.copyfile(
                self.cfg.live_settings, self.cfg.backups_dir / "original-settings.json"
            )
        log.info("original configuration backed up to %s", self.cfg.backups_dir)
        return True


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.exists() and b.exists() and os.path.samefile(a, b)
    except OSError:
        return False


def _copy_bytes(src: Path, dst: Path) -> None:
    # live がこのプロファイルへの symlink のときは自分自身へのコピーになる
    if _same_file(src, dst):
        return
    shutil.copyfile(src, dst)
    os.chmod(dst, 0o600)
