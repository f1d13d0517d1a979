"""プロファイルの認証モード判定。

判定順（Claude CLI 自身の優先順位に合わせる）:
1. settings.env に API key / auth token があれば API_KEY（OAuth より優先）
2. keychain トークンの退避があれば OAUTH
3. auth.json に sessionToken か oauthAccount があれば OAUTH
4. どれも無ければ INVALID
"""

from __future__ import annotations

from enum import Enum

from claude_switch.documents import AuthDocument, SettingsDocument
from claude_switch.store import Profile


class AuthMode(str, Enum):
    OAUTH = "oauth"
    API_KEY = "api_key"
    INVALID = "invalid"


class SaveVerdict(str, Enum):
    OAUTH = "oauth"
    API_KEY = "api_key"
    BOTH = "both"
    NEITHER = "neither"


def classify(profile: Profile) -> AuthMode:
    if profile.settings is not None and profile.settings.has_api_credential:
        return AuthMode.API_KEY
    if profile.has_blob:
        return AuthMode.OAUTH
    if profile.auth is not None and profile.auth.has_oauth:
        return AuthMode.OAUTH
    return AuthMode.INVALID


def validate_for_save(
    live_auth: AuthDocument | None, live_settings: SettingsDocument | None
) -> SaveVerdict:
    has_oauth = live_auth is not None and live_auth.has_oauth
    has_api_key = live_settings is not None and live_settings.has_api_credential
    if has_oauth and has_api_key:
        return SaveVerdict.BOTH
    if has_api_key:
        return SaveVerdict.API_KEY
    if has_oauth:
        return SaveVerdict.OAUTH
    return SaveVerdict.NEITHER


_PROVIDER_HOSTS = (
    ("z.ai", "Z.ai"),
    ("localhost:8787", "OpenRouter"),
    ("deepseek", "DeepSeek"),
    ("moonshot", "Kimi"),
)


def provider_label(profile: Profile) -> str:
    """`list` 表示用のプロバイダ名。"""
    if profile.has_blob:
        return "Claude.ai (OAuth)"
    if profile.settings is not None:
        base_url = profile.settings.base_url or ""
        for needle, label in _PROVIDER_HOSTS:
            if needle in base_url:
                return label
        return "API Key"
    if profile.auth is not None and profile.auth.has_oauth:
        return "OAuth"
    return "Unknown"
