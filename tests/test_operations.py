"""save / new / repair / migrate のテスト。"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from claude_switch.activation import Activator
from claude_switch.classify import AuthMode, SaveVerdict
from claude_switch.config import ProviderDef, SwitchConfig
from claude_switch.documents import SettingsDocument
from claude_switch.errors import (
    AlreadyExists,
    AmbiguousCredential,
    NoCredential,
    NotFound,
    OperationCancelled,
)
from claude_switch.operations import (
    create_api_key_profile,
    create_oauth_profile,
    describe_live,
    migrate_from_secrets,
    parse_secrets_file,
    repair_profiles,
    save_profile,
    summarize_profiles,
)
from claude_switch.store import ProfileStore


# ---------- new ----------


def test_create_api_key_profile_end_to_end(
    activator: Activator, cfg: SwitchConfig, store: ProfileStore
) -> None:
    key = "sk-test-aaaaaaaaaaaaaaaaaaaaXXXXXXXXXXXXXXXXXXXX"
    result = create_api_key_profile(activator, "work", key, "https://api.example.com")

    assert result.mode is AuthMode.API_KEY
    assert cfg.live_settings.is_symlink()
    assert cfg.live_settings.resolve() == (cfg.profiles_dir / "work" / "settings.json").resolve()
    auth = json.loads(cfg.live_auth.read_text(encoding="utf-8"))
    assert auth["customApiKeyResponses"]["approved"] == [key[-20:]]
    assert cfg.marker_path.read_text(encoding="utf-8").strip() == "work"

    settings = store.read("work").settings
    assert settings is not None
    assert settings.env == {
        "ANTHROPIC_API_KEY": key,
        "ANTHROPIC_BASE_URL": "https://api.example.com",
        "API_TIMEOUT_MS": "3000000",
    }


def test_create_api_key_profile_default_base_url(activator: Activator, store) -> None:
    create_api_key_profile(activator, "zai", "sk-abc")
    assert store.read("zai").settings.base_url == "https://api.z.ai/api/anthropic"


def test_create_api_key_profile_rejects_empty_key(activator: Activator, store) -> None:
    with pytest.raises(NoCredential):
        create_api_key_profile(activator, "zai", "   ")
    assert store.list() == []


def test_create_existing_profile_fails(activator: Activator, api_profile) -> None:
    api_profile("zai")
    with pytest.raises(AlreadyExists):
        create_api_key_profile(activator, "zai", "sk-abc")


def test_create_oauth_profile_links_empty_auth(
    activator: Activator, cfg: SwitchConfig, keychain
) -> None:
    keychain.secret = "previous-account"
    result = create_oauth_profile(activator, "fresh")

    assert result.mode is AuthMode.OAUTH
    assert cfg.live_auth.is_symlink()
    assert keychain.secret is None

    # /login の書き込みは symlink 越しにプロファイルへ入る
    cfg.live_auth.write_text('{"oauthAccount": {"emailAddress": "new@x.y"}}', encoding="utf-8")
    assert "new@x.y" in (cfg.profiles_dir / "fresh" / "auth.json").read_text(encoding="utf-8")


# ---------- save ----------


def test_save_without_credentials_creates_nothing(
    activator: Activator, store, write_live
) -> None:
    write_live(auth={"hasCompletedOnboarding": True}, settings={"model": "opus"})
    with pytest.raises(NoCredential):
        save_profile(activator, "p")
    assert store.list() == []
    assert not (store.root / "p").exists()


def test_save_without_live_auth(activator: Activator) -> None:
    with pytest.raises(NotFound):
        save_profile(activator, "p")


def test_save_oauth_captures_keychain_and_drops_settings(
    activator: Activator, cfg: SwitchConfig, store, keychain, write_live
) -> None:
    write_live(
        auth={"oauthAccount": {"emailAddress": "a@b.com"}},
        settings={"model": "opus"},
    )
    keychain.secret = "oauth-token"

    result = save_profile(activator, "personal")

    assert result.verdict is SaveVerdict.OAUTH
    assert store.read_blob("personal") == "oauth-token"
    assert not store.settings_path("personal").exists()
    assert cfg.live_auth.is_symlink()
    assert not cfg.live_settings.exists()
    assert keychain.secret == "oauth-token"


def test_save_api_key(activator: Activator, cfg: SwitchConfig, store, write_live) -> None:
    write_live(auth={}, settings={"env": {"ANTHROPIC_API_KEY": "sk-" + "y" * 30}})
    result = save_profile(activator, "zai")

    assert result.verdict is SaveVerdict.API_KEY
    assert store.settings_path("zai").exists()
    assert cfg.live_settings.is_symlink()


def test_save_both_requires_confirmation(activator: Activator, store, write_live) -> None:
    write_live(
        auth={"sessionToken": "s"},
        settings={"env": {"ANTHROPIC_API_KEY": "sk-x"}},
    )
    with pytest.raises(AmbiguousCredential):
        save_profile(activator, "mixed", confirm=lambda message: False)
    assert store.list() == []

    result = save_profile(activator, "mixed", confirm=lambda message: True)
    assert result.verdict is SaveVerdict.BOTH
    assert result.activation.mode is AuthMode.API_KEY


def test_save_existing_requires_overwrite_confirmation(
    activator: Activator, api_profile, write_live
) -> None:
    api_profile("zai")
    write_live(auth={"sessionToken": "s"})
    with pytest.raises(OperationCancelled):
        save_profile(activator, "zai")
    with pytest.raises(OperationCancelled):
        save_profile(activator, "zai", confirm=lambda message: False)


def test_roundtrip_capture_switch_and_back(
    activator: Activator, cfg: SwitchConfig, store, api_profile, write_live
) -> None:
    original = '{\n  "oauthAccount": {"emailAddress": "a@b.com"},\n  "theme": "dark"\n}\n'
    cfg.live_auth.write_text(original, encoding="utf-8")
    save_profile(activator, "personal")
    api_profile("zai")

    activator.activate("zai")
    activator.activate("personal")

    assert store.auth_path("personal").read_text(encoding="utf-8") == original
    assert cfg.live_auth.read_text(encoding="utf-8") == original


# ---------- repair ----------


def test_repair_moves_conflicting_settings(store: ProfileStore, oauth_profile, api_profile) -> None:
    oauth_profile("mixed")
    store.write_settings("mixed", SettingsDocument(env={"ANTHROPIC_API_KEY": "sk"}))
    oauth_profile("envonly")
    store.write_settings("envonly", SettingsDocument(env={"FOO": "bar"}))
    api_profile("anthropic-api")
    api_profile("zai")
    oauth_profile("clean")
    store.write_settings("clean", SettingsDocument(model="opus"))

    report = repair_profiles(store, ["claude", "anthropic", "claude-*", "anthropic-*"])

    assert report.checked == 5
    repaired = {a.name for a in report.repaired}
    assert repaired == {"mixed", "envonly", "anthropic-api"}
    assert not store.settings_path("mixed").exists()
    assert store.settings_path("zai").exists()
    assert store.settings_path("clean").exists()


def test_repair_clean_store(store: ProfileStore, api_profile) -> None:
    api_profile("zai")
    report = repair_profiles(store, [])
    assert report.checked == 1
    assert report.repaired == []


def test_repair_skips_unreadable(store: ProfileStore) -> None:
    store.create("bad")
    store.auth_path("bad").write_text("{oops", encoding="utf-8")
    report = repair_profiles(store, [])
    assert report.unreadable == ["bad"]


# ---------- migrate ----------


def test_parse_secrets_file(tmp_path: Path) -> None:
    p = tmp_path / ".secrets"
    p.write_text(
        """
# comment
export Z_AI_API_KEY="zai-key"
DEEPSEEK_API_KEY='ds key'  # trailing
not a line
KIMI_API_KEY=plain
""",
        encoding="utf-8",
    )
    values = parse_secrets_file(p)
    assert values == {"Z_AI_API_KEY": "zai-key", "DEEPSEEK_API_KEY": "ds key", "KIMI_API_KEY": "plain"}


def test_migrate_from_secrets(tmp_path: Path, store: ProfileStore, api_profile) -> None:
    secrets = tmp_path / ".secrets"
    secrets.write_text(
        'export Z_AI_API_KEY="zai-0123456789abcdefghijXYZ"\nKIMI_API_KEY=kimi-key\n',
        encoding="utf-8",
    )
    api_profile("kimi")
    providers = [
        ProviderDef("z.ai", "Z_AI_API_KEY", "https://api.z.ai/api/anthropic"),
        ProviderDef("openrouter", "OPENROUTER_API_KEY", "http://localhost:8787"),
        ProviderDef("kimi", "KIMI_API_KEY", "https://api.moonshot.ai/anthropic"),
    ]

    report = migrate_from_secrets(
        store, secrets, providers, environ={"OPENROUTER_API_KEY": "or-key"}
    )

    assert report.created == ["z.ai", "openrouter"]
    assert report.skipped == ["kimi"]
    zai = store.read("z.ai")
    assert zai.settings.model == "sonnet"
    assert zai.settings.base_url == "https://api.z.ai/api/anthropic"
    assert zai.auth.custom_api_key_responses.approved == ["0123456789abcdefghijXYZ"[-20:]]
    assert (store.settings_path("z.ai").stat().st_mode & 0o777) == 0o600


def test_migrate_nothing(tmp_path: Path, store: ProfileStore) -> None:
    report = migrate_from_secrets(
        store, tmp_path / "missing", [ProviderDef("z.ai", "Z_AI_API_KEY", "u")], environ={}
    )
    assert report.created == []
    assert store.list() == []


# ---------- 表示 ----------


def test_summaries_and_live(
    activator: Activator, cfg: SwitchConfig, store, tracker, oauth_profile, api_profile
) -> None:
    oauth_profile("personal", email="me@x.y", blob="t")
    api_profile("zai", base_url="https://api.z.ai/api/anthropic")
    activator.activate("zai")

    summaries = {s.name: s for s in summarize_profiles(store, tracker)}
    assert summaries["zai"].active is True
    assert summaries["zai"].provider == "Z.ai"
    assert summaries["zai"].model == "sonnet"
    assert summaries["personal"].active is False
    assert summaries["personal"].email == "me@x.y"
    assert summaries["personal"].provider == "Claude.ai (OAuth)"

    live = describe_live(cfg, tracker)
    assert live.current == "zai"
    assert live.email is None
    assert live.env["ANTHROPIC_BASE_URL"] == "https://api.z.ai/api/anthropic"


def test_summaries_mark_undecodable_profile_unreadable(
    store: ProfileStore, tracker, api_profile
) -> None:
    api_profile("zai")
    store.create("bad")
    store.auth_path("bad").write_bytes(b'{"x": "\xff\xfe"}')

    summaries = {s.name: s for s in summarize_profiles(store, tracker)}

    assert summaries["bad"].provider == "Unreadable"
    assert summaries["zai"].provider == "API Key"
