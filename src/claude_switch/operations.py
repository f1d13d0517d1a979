"""複合操作（save / new / repair / migrate / 一覧表示用の集計）。

CLI から呼ばれる単位。確認プロンプトは `confirm` コールバックで受け取り、
このモジュール自身は入出力を持たない。
"""

from __future__ import annotations

import fnmatch
import logging
import os
import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from claude_switch.activation import ActivationResult, Activator, Confirm
from claude_switch.classify import AuthMode, SaveVerdict, classify, provider_label, validate_for_save
from claude_switch.config import DEFAULT_BASE_URL, ProviderDef, SwitchConfig
from claude_switch.documents import AuthDocument, SettingsDocument, load_auth, load_settings
from claude_switch.errors import (
    AmbiguousCredential,
    DocumentError,
    NoCredential,
    NotFound,
    OperationCancelled,
)
from claude_switch.store import ProfileStore, validate_name
from claude_switch.tracker import CurrentProfileTracker

log = logging.getLogger(__name__)

API_TIMEOUT_MS = "3000000"


# ---------- save / new ----------


@dataclass
class SaveResult:
    verdict: SaveVerdict
    activation: ActivationResult
    warnings: list[str] = field(default_factory=list)


def save_profile(act: Activator, name: str, *, confirm: Confirm | None = None) -> SaveResult:
    """現在の Live Configuration をプロファイルとして保存し、そのまま有効化する。"""
    validate_name(name)
    cfg = act.cfg
    if not cfg.live_auth.exists():
        raise NotFound(f"no Claude auth found at {cfg.live_auth}")

    live_auth = load_auth(cfg.live_auth)
    live_settings = load_settings(cfg.live_settings) if cfg.live_settings.exists() else None
    verdict = validate_for_save(live_auth, live_settings)

    if verdict is SaveVerdict.NEITHER:
        raise NoCredential(
            "no valid authentication found: log in with OAuth or configure an API key first"
        )
    if verdict is SaveVerdict.BOTH:
        message = (
            "Both OAuth and API key found. Claude will prioritize the API key. "
            "Continue saving this profile?"
        )
        if confirm is None or not confirm(message):
            raise AmbiguousCredential("both OAuth and API key credentials are present")
    if act.store.exists(name):
        if confirm is None or not confirm(f"Profile '{name}' already exists. Overwrite?"):
            raise OperationCancelled("cancelled")

    has_api_key = verdict in (SaveVerdict.API_KEY, SaveVerdict.BOTH)
    has_oauth = verdict in (SaveVerdict.OAUTH, SaveVerdict.BOTH)

    # OAuth プロファイルに settings.json を持たせると認証が衝突する
    act.store.capture_from_live(name, include_settings=has_api_key, overwrite=True)

    warnings: list[str] = []
    if has_oauth:
        secret = act.keychain_call(warnings, "backup", act.keychain.read)
        if isinstance(secret, str) and secret:
            act.store.write_blob(name, secret)
    else:
        act.store.remove_blob(name)

    activation = act.activate(name, skip_running_check=True)
    log.info("profile %s saved (%s)", name, verdict.value)
    return SaveResult(verdict=verdict, activation=activation, warnings=warnings)


def create_oauth_profile(act: Activator, name: str) -> ActivationResult:
    """空プロファイルを作って有効化する。この後の /login が symlink 越しに書き込む。"""
    act.store.create(name)
    return act.activate(name, skip_running_check=True, allow_pending_login=True)


def _api_key_settings(api_key: str, base_url: str, *, model: str | None = None) -> SettingsDocument:
    return SettingsDocument(
        env={
            "ANTHROPIC_API_KEY": api_key,
            "ANTHROPIC_BASE_URL": base_url,
            "API_TIMEOUT_MS": API_TIMEOUT_MS,
        },
        model=model,
        has_env=True,
    )


def create_api_key_profile(
    act: Activator,
    name: str,
    api_key: str,
    base_url: str | None = None,
) -> ActivationResult:
    validate_name(name)
    api_key = api_key.strip()
    if not api_key:
        raise NoCredential("API key cannot be empty")

    store = act.store
    store.create(name)
    store.write_auth(
        name,
        AuthDocument(
            has_completed_onboarding=True,
            extra={"cachedStatsigGates": {}, "cachedGrowthBookFeatures": {}},
        ),
    )
    store.write_settings(name, _api_key_settings(api_key, base_url or DEFAULT_BASE_URL))
    return act.activate(name, skip_running_check=True)


# ---------- repair ----------


@dataclass
class RepairAction:
    name: str
    reason: str
    moved_to: Path


@dataclass
class RepairReport:
    checked: int = 0
    repaired: list[RepairAction] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)


def repair_profiles(store: ProfileStore, oauth_name_patterns: list[str]) -> RepairReport:
    """OAuth と API key が同居しているプロファイルの settings.json を退避する。"""
    report = RepairReport()
    for name in store.list():
        report.checked += 1
        try:
            profile = store.read(name)
        except DocumentError as e:
            log.warning("repair: skipping %s: %s", name, e)
            report.unreadable.append(name)
            continue

        settings = profile.settings
        if settings is None:
            continue

        is_oauth = profile.has_blob or (profile.auth is not None and profile.auth.has_oauth)
        has_api_key = settings.has_api_credential
        suggests_oauth = any(fnmatch.fnmatchcase(name, pat) for pat in oauth_name_patterns)

        if suggests_oauth and has_api_key:
            reason = "appears to be an OAuth profile but has API key settings"
        elif is_oauth and has_api_key:
            reason = "OAuth profile with API key settings"
        elif is_oauth and settings.has_env:
            reason = "OAuth profile with env vars in settings"
        else:
            continue

        moved = store.move_settings_aside(name)
        report.repaired.append(RepairAction(name=name, reason=reason, moved_to=moved))
    return report


# ---------- migrate ----------

_ASSIGN_RE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


def parse_secrets_file(path: Path) -> dict[str, str]:
    """`KEY=value` / `export KEY=value` 形式の行だけを拾う（sourceはしない）。"""
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        m = _ASSIGN_RE.match(line.strip())
        if not m:
            continue
        key, raw = m.group(1), m.group(2)
        try:
            parts = shlex.split(raw, comments=True)
        except ValueError:
            parts = [raw.strip()]
        values[key] = parts[0] if parts else ""
    return values


@dataclass
class MigrationReport:
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def create_migrated_profile(store: ProfileStore, name: str, api_key: str, base_url: str) -> None:
    store.create(name)
    store.write_auth(name, AuthDocument().for_api_key(api_key))
    store.write_settings(name, _api_key_settings(api_key, base_url, model="sonnet"))
    log.info("migrated API key profile: %s", name)


def migrate_from_secrets(
    store: ProfileStore,
    secrets_path: Path,
    providers: list[ProviderDef],
    *,
    environ: Mapping[str, str] | None = None,
) -> MigrationReport:
    env = dict(os.environ if environ is None else environ)
    env.update(parse_secrets_file(secrets_path))

    report = MigrationReport()
    for provider in providers:
        api_key = env.get(provider.env_var, "").strip()
        if not api_key:
            continue
        if store.exists(provider.name):
            log.warning("migrate: profile %s already exists; skipping", provider.name)
            report.skipped.append(provider.name)
            continue
        create_migrated_profile(store, provider.name, api_key, provider.base_url)
        report.created.append(provider.name)
    return report


# ---------- 表示用の集計 ----------


@dataclass
class ProfileSummary:
    name: str
    active: bool
    provider: str
    mode: AuthMode | None = None
    email: str | None = None
    base_url: str | None = None
    model: str | None = None


def summarize_profiles(store: ProfileStore, tracker: CurrentProfileTracker) -> list[ProfileSummary]:
    current = tracker.get()
    out: list[ProfileSummary] = []
    for name in store.list():
        try:
            profile = store.read(name)
        except DocumentError as e:
            log.warning("list: %s is unreadable: %s", name, e)
            out.append(ProfileSummary(name=name, active=name == current, provider="Unreadable"))
            continue
        settings = profile.settings
        out.append(
            ProfileSummary(
                name=name,
                active=name == current,
                provider=provider_label(profile),
                mode=classify(profile),
                email=profile.auth.email if profile.auth else None,
                base_url=settings.base_url if settings else None,
                model=settings.model if settings else None,
            )
        )
    return out


@dataclass
class LiveSummary:
    current: str
    has_auth: bool = False
    email: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    has_settings: bool = False


def describe_live(cfg: SwitchConfig, tracker: CurrentProfileTracker) -> LiveSummary:
    summary = LiveSummary(current=tracker.get())
    if cfg.live_auth.exists():
        summary.has_auth = True
        summary.email = load_auth(cfg.live_auth).email
    if cfg.live_settings.exists():
        settings = load_settings(cfg.live_settings)
        summary.has_settings = True
        summary.env = dict(settings.env)
        summary.model = settings.model
    return summary
