from __future__ import annotations

import json
from pathlib import Path

import pytest

from claude_switch.activation import Activator
from claude_switch.config import SwitchConfig
from claude_switch.documents import AuthDocument, SettingsDocument
from claude_switch.errors import AdapterUnavailable
from claude_switch.store import ProfileStore
from claude_switch.tracker import CurrentProfileTracker


class FakeKeychain:
    """keychain の 1 スロットをメモリ上で再現する。"""

    def __init__(self, secret: str | None = None, *, broken: bool = False) -> None:
        self.secret = secret
        self.broken = broken
        self.calls: list[str] = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if self.broken:
            raise AdapterUnavailable("keychain CLI not found: security")

    def exists(self) -> bool:
        self._check("exists")
        return self.secret is not None

    def read(self) -> str | None:
        self._check("read")
        return self.secret

    def write(self, secret: str) -> None:
        self._check("write")
        self.secret = secret

    def delete(self) -> None:
        self._check("delete")
        self.secret = None


@pytest.fixture()
def cfg(tmp_path: Path) -> SwitchConfig:
    """tmp_path/home を home とする設定。"""
    c = SwitchConfig(home=tmp_path / "home", keychain="none")
    c.claude_dir.mkdir(parents=True)
    return c


@pytest.fixture()
def store(cfg: SwitchConfig) -> ProfileStore:
    s = ProfileStore(cfg)
    s.init()
    return s


@pytest.fixture()
def tracker(cfg: SwitchConfig, store: ProfileStore) -> CurrentProfileTracker:
    return CurrentProfileTracker(cfg, store)


@pytest.fixture()
def keychain() -> FakeKeychain:
    return FakeKeychain()


@pytest.fixture()
def activator(
    cfg: SwitchConfig,
    store: ProfileStore,
    tracker: CurrentProfileTracker,
    keychain: FakeKeychain,
) -> Activator:
    return Activator(cfg=cfg, store=store, keychain=keychain, tracker=tracker)


@pytest.fixture()
def write_live(cfg: SwitchConfig):
    """live auth / settings を書く。"""

    def _write(auth: dict | None = None, settings: dict | None = None) -> None:
        if auth is not None:
            cfg.live_auth.write_text(json.dumps(auth), encoding="utf-8")
        if settings is not None:
            cfg.live_settings.write_text(json.dumps(settings), encoding="utf-8")

    return _write


@pytest.fixture()
def oauth_profile(store: ProfileStore):
    def _make(name: str, email: str = "a@b.com", blob: str | None = None) -> None:
        store.create(name)
        store.write_auth(
            name,
            AuthDocument(
                oauth_account={"emailAddress": email},
                has_completed_onboarding=True,
                extra={"userID": f"user-{name}"},
            ),
        )
        if blob is not None:
            store.write_blob(name, blob)

    return _make


@pytest.fixture()
def api_profile(store: ProfileStore):
    def _make(
        name: str,
        api_key: str = "sk-test-0123456789abcdefghijKLMNOPQRSTUVWXYZ",
        base_url: str = "https://api.example.com",
    ) -> None:
        store.create(name)
        store.write_auth(name, AuthDocument(has_completed_onboarding=True))
        store.write_settings(
            name,
            SettingsDocument(
                env={"ANTHROPIC_API_KEY": api_key, "ANTHROPIC_BASE_URL": base_url},
                model="sonnet",
            ),
        )

    return _make
