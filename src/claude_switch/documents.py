"""auth.json / settings.json のドキュメントモデル。

既知フィールドは明示的に持ち、それ以外は `extra` に退避する。
OAuth フィールドだけを落とすような部分編集でも、知らないキーは保持される。
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from claude_switch.errors import DocumentError, NotFound

API_KEY_VARS = ("ANTHROPIC_API_KEY", "ANTHROPIC_AUTH_TOKEN")
BASE_URL_VAR = "ANTHROPIC_BASE_URL"

# dataclass field -> JSON key（出力順もこの順）
_AUTH_KEYS = {
    "session_token": "sessionToken",
    "refresh_token": "refreshToken",
    "access_token": "accessToken",
    "expires_at": "expiresAt",
    "oauth_account": "oauthAccount",
    "claude_code_first_token_date": "claudeCodeFirstTokenDate",
    "has_completed_onboarding": "hasCompletedOnboarding",
    "custom_api_key_responses": "customApiKeyResponses",
}

OAUTH_FIELDS = (
    "session_token",
    "refresh_token",
    "access_token",
    "expires_at",
    "oauth_account",
    "claude_code_first_token_date",
)


@dataclass
class ApiKeyResponses:
    approved: list[str] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ApiKeyResponses:
        extra = {k: v for k, v in raw.items() if k not in ("approved", "rejected")}
        return cls(
            approved=list(raw.get("approved") or []),
            rejected=list(raw.get("rejected") or []),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        return {"approved": list(self.approved), "rejected": list(self.rejected), **self.extra}


@dataclass
class AuthDocument:
    session_token: str | None = None
    refresh_token: str | None = None
    access_token: str | None = None
    expires_at: Any = None
    oauth_account: dict[str, Any] | None = None
    claude_code_first_token_date: str | None = None
    has_completed_onboarding: bool | None = None
    custom_api_key_responses: ApiKeyResponses | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> AuthDocument:
        by_key = {v: k for k, v in _AUTH_KEYS.items()}
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in raw.items():
            attr = by_key.get(key)
            if attr is None:
                extra[key] = value
            elif attr == "custom_api_key_responses" and isinstance(value, dict):
                kwargs[attr] = ApiKeyResponses.from_dict(value)
            elif attr == "oauth_account" and not isinstance(value, dict):
                # 想定外の型はそのまま残す
                extra[key] = value
            else:
                kwargs[attr] = value
        return cls(**kwargs, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for attr, key in _AUTH_KEYS.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if isinstance(value, ApiKeyResponses):
                value = value.to_dict()
            out[key] = value
        out.update(self.extra)
        return out

    @property
    def has_oauth(self) -> bool:
        """sessionToken か oauthAccount があれば OAuth とみなす。"""
        return bool(self.session_token) or bool(self.oauth_account)

    @property
    def email(self) -> str | None:
        if not self.oauth_account:
            return None
        value = self.oauth_account.get("emailAddress") or self.oauth_account.get("email")
        return str(value) if value else None

    def without_oauth(self) -> AuthDocument:
        # 型が想定外で extra に落ちた OAuth キーも消す
        oauth_keys = {_AUTH_KEYS[attr] for attr in OAUTH_FIELDS}
        extra = {k: v for k, v in self.extra.items() if k not in oauth_keys}
        return replace(self, extra=extra, **{attr: None for attr in OAUTH_FIELDS})

    def for_api_key(self, api_key: str | None) -> AuthDocument:
        """OAuth フィールドを落とし、onboarding 完了と API key 事前承認を付ける。"""
        approved = [api_key_tail(api_key)] if api_key else []
        return replace(
            self.without_oauth(),
            has_completed_onboarding=True,
            custom_api_key_responses=ApiKeyResponses(approved=approved, rejected=[]),
        )


def api_key_tail(api_key: str, length: int = 20) -> str:
    """Claude CLI が承認記録に使う API key の末尾。"""
    return api_key[-length:]


@dataclass
class SettingsDocument:
    env: dict[str, str] = field(default_factory=dict)
    model: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    has_env: bool = False  # `env` キーが元ドキュメントに存在したか

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> SettingsDocument:
        env_raw = raw.get("env")
        env: dict[str, str] = {}
        if isinstance(env_raw, dict):
            env = {str(k): "" if v is None else str(v) for k, v in env_raw.items()}
        model = raw.get("model")
        extra = {k: v for k, v in raw.items() if k not in ("env", "model")}
        return cls(
            env=env,
            model=str(model) if model else None,
            extra=extra,
            has_env="env" in raw and env_raw is not None,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.env or self.has_env:
            out["env"] = dict(self.env)
        if self.model:
            out["model"] = self.model
        out.update(self.extra)
        return out

    @property
    def api_key(self) -> str | None:
        return self.env.get("ANTHROPIC_API_KEY") or None

    @property
    def base_url(self) -> str | None:
        return self.env.get(BASE_URL_VAR) or None

    @property
    def has_api_credential(self) -> bool:
        return any(self.env.get(name) for name in API_KEY_VARS)


def read_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise NotFound(f"document not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DocumentError(f"{path} is not valid UTF-8") from e
    if text.strip() == "":
        return {}
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentError(f"invalid JSON in {path}: {e.msg}") from e
    if not isinstance(raw, dict):
        raise DocumentError(f"expected a JSON object in {path}")
    return raw


def dump_json(raw: dict[str, Any]) -> str:
    return json.dumps(raw, ensure_ascii=False, indent=2) + "\n"


def load_auth(path: Path) -> AuthDocument:
    return AuthDocument.from_dict(read_json(path))


def load_settings(path: Path) -> SettingsDocument:
    return SettingsDocument.from_dict(read_json(path))
