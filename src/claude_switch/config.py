"""claude-switch の設定。

パスはすべて `home` から導出する（テストでは tmp_path を home にする）。

設定ファイル: `~/.claude/claude-switch.toml`（任意）

```toml
[keychain]
mode = "auto"            # auto | macos | none
service = "Claude Code-credentials"
account = "user"
timeout = 10

[guard]
process_patterns = ["claude/cli", "claude-code"]

[env]
unset = ["ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "API_TIMEOUT_MS"]

[repair]
oauth_name_patterns = ["claude", "anthropic", "claude-*", "anthropic-*"]

[migrate]
secrets_file = "~/.secrets"

[[migrate.providers]]
name = "z.ai"
env_var = "Z_AI_API_KEY"
base_url = "https://api.z.ai/api/anthropic"

[logging]
level = "INFO"
```

環境変数:
- `CLAUDE_SWITCH_HOME`: home ルートの上書き
- `CLAUDE_SWITCH_CONFIG`: 設定ファイルパスの上書き
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

DEFAULT_BASE_URL = "https://api.z.ai/api/anthropic"


@dataclass
class ProviderDef:
    """migrate で取り込む API key プロバイダ。"""

    name: str
    env_var: str
    base_url: str


def _default_providers() -> list[ProviderDef]:
    return [
        ProviderDef("z.ai", "Z_AI_API_KEY", DEFAULT_BASE_URL),
        ProviderDef("openrouter", "OPENROUTER_API_KEY", "http://localhost:8787"),
        ProviderDef("deepseek", "DEEPSEEK_API_KEY", "https://api.deepseek.com/anthropic"),
        ProviderDef("kimi", "KIMI_API_KEY", "https://api.moonshot.ai/anthropic"),
    ]


@dataclass
class SwitchConfig:
    home: Path = field(default_factory=Path.home)

    keychain: str = "auto"  # auto | macos | none
    keychain_service: str = "Claude Code-credentials"
    keychain_account: str = "user"
    keychain_timeout: float = 10.0

    process_patterns: list[str] = field(default_factory=lambda: ["claude/cli", "claude-code"])
    unset_vars: list[str] = field(
        default_factory=lambda: [
            "ANTHROPIC_API_KEY",
            "ANTHROPIC_AUTH_TOKEN",
            "ANTHROPIC_BASE_URL",
            "ANTHROPIC_MODEL",
            "API_TIMEOUT_MS",
        ]
    )
    oauth_name_patterns: list[str] = field(
        default_factory=lambda: ["claude", "anthropic", "claude-*", "anthropic-*"]
    )
    secrets_file: Path | None = None  # None -> ~/.secrets
    providers: list[ProviderDef] = field(default_factory=_default_providers)
    log_level: str = "INFO"

    @property
    def claude_dir(self) -> Path:
        return self.home / ".claude"

    @property
    def live_auth(self) -> Path:
        return self.home / ".claude.json"

    @property
    def live_settings(self) -> Path:
        return self.claude_dir / "settings.json"

    @property
    def profiles_dir(self) -> Path:
        return self.claude_dir / "profiles"

    @property
    def backups_dir(self) -> Path:
        return self.claude_dir / "backups"

    @property
    def marker_path(self) -> Path:
        return self.claude_dir / "current-profile.txt"

    @property
    def env_file(self) -> Path:
        return self.claude_dir / "env.sh"

    @property
    def log_dir(self) -> Path:
        return self.claude_dir / "logs"

    @property
    def secrets_path(self) -> Path:
        if self.secrets_file is not None:
            return self.secrets_file
        return self.home / ".secrets"


def default_config_path(home: Path) -> Path:
    return home / ".claude" / "claude-switch.toml"


def _expand(raw: str, home: Path) -> Path:
    if raw.startswith("~/"):
        return home / raw[2:]
    return Path(raw)


def load_config(path: Path | None = None, *, home: Path | None = None) -> SwitchConfig:
    if home is None:
        env_home = os.environ.get("CLAUDE_SWITCH_HOME", "").strip()
        home = Path(env_home) if env_home else Path.home()
    if path is None:
        env_path = os.environ.get("CLAUDE_SWITCH_CONFIG", "").strip()
        path = Path(env_path) if env_path else default_config_path(home)
    if not path.exists():
        return SwitchConfig(home=home)

    raw = tomllib.loads(path.read_text(encoding="utf-8"))

    keychain = raw.get("keychain", {})
    guard = raw.get("guard", {})
    env = raw.get("env", {})
    repair = raw.get("repair", {})
    migrate = raw.get("migrate", {})
    logging_cfg = raw.get("logging", {})

    defaults = SwitchConfig(home=home)

    providers = defaults.providers
    if "providers" in migrate:
        providers = [
            ProviderDef(
                name=str(p.get("name", "")),
                env_var=str(p.get("env_var", "")),
                base_url=str(p.get("base_url", DEFAULT_BASE_URL)),
            )
            for p in migrate.get("providers", []) or []
            if p.get("name") and p.get("env_var")
        ]

    secrets_raw = str(migrate.get("secrets_file", "")).strip()

    return SwitchConfig(
        home=home,
        keychain=str(keychain.get("mode", defaults.keychain)),
        keychain_service=str(keychain.get("service", defaults.keychain_service)),
        keychain_account=str(keychain.get("account", defaults.keychain_account)),
        keychain_timeout=float(keychain.get("timeout", defaults.keychain_timeout)),
        process_patterns=list(guard.get("process_patterns", defaults.process_patterns) or []),
        unset_vars=list(env.get("unset", defaults.unset_vars) or []),
        oauth_name_patterns=list(
            repair.get("oauth_name_patterns", defaults.oauth_name_patterns) or []
        ),
        secrets_file=_expand(secrets_raw, home) if secrets_raw else None,
        providers=providers,
        log_level=str(logging_cfg.get("level", defaults.log_level)),
    )
