"""config モジュールのテスト。"""

from pathlib import Path

from claude_switch.config import SwitchConfig, load_config


def test_default_paths(tmp_path: Path) -> None:
    cfg = SwitchConfig(home=tmp_path)
    assert cfg.live_auth == tmp_path / ".claude.json"
    assert cfg.live_settings == tmp_path / ".claude" / "settings.json"
    assert cfg.profiles_dir == tmp_path / ".claude" / "profiles"
    assert cfg.marker_path == tmp_path / ".claude" / "current-profile.txt"
    assert cfg.env_file == tmp_path / ".claude" / "env.sh"
    assert cfg.secrets_path == tmp_path / ".secrets"
    assert cfg.keychain_service == "Claude Code-credentials"
    assert cfg.keychain_account == "user"


def test_load_default_config_missing_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.toml", home=tmp_path)
    assert cfg.home == tmp_path
    assert cfg.keychain == "auto"
    assert [p.name for p in cfg.providers] == ["z.ai", "openrouter", "deepseek", "kimi"]


def test_load_config_from_file(tmp_path: Path) -> None:
    p = tmp_path / "claude-switch.toml"
    p.write_text(
        """
[keychain]
mode = "none"
timeout = 3

[guard]
process_patterns = ["claude"]

[env]
unset = ["FOO"]

[migrate]
secrets_file = "~/.config/secrets.env"

[[migrate.providers]]
name = "custom"
env_var = "CUSTOM_KEY"
base_url = "https://llm.example.com"

[logging]
level = "DEBUG"
""",
        encoding="utf-8",
    )

    cfg = load_config(p, home=tmp_path)
    assert cfg.keychain == "none"
    assert cfg.keychain_timeout == 3.0
    assert cfg.process_patterns == ["claude"]
    assert cfg.unset_vars == ["FOO"]
    assert cfg.secrets_path == tmp_path / ".config" / "secrets.env"
    assert len(cfg.providers) == 1
    assert cfg.providers[0].base_url == "https://llm.example.com"
    assert cfg.log_level == "DEBUG"
    # 未指定はデフォルト
    assert cfg.oauth_name_patterns == ["claude", "anthropic", "claude-*", "anthropic-*"]


def test_env_overrides(tmp_path: Path, monkeypatch) -> None:
    cfg_file = tmp_path / "other.toml"
    cfg_file.write_text('[keychain]\nmode = "none"\n', encoding="utf-8")
    monkeypatch.setenv("CLAUDE_SWITCH_HOME", str(tmp_path / "h"))
    monkeypatch.setenv("CLAUDE_SWITCH_CONFIG", str(cfg_file))

    cfg = load_config()
    assert cfg.home == tmp_path / "h"
    assert cfg.keychain == "none"
