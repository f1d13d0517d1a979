"""シェル連携用 env.sh の生成。

`eval`/`source` されることを想定:

    unset ANTHROPIC_API_KEY 2>/dev/null
    export ANTHROPIC_BASE_URL='https://...'
    export CLAUDE_CURRENT_PROFILE='work'

前のプロファイルの値が残らないよう、既知の変数は必ず先に unset する。
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from claude_switch.documents import SettingsDocument

log = logging.getLogger(__name__)

PROFILE_VAR = "CLAUDE_CURRENT_PROFILE"
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def sh_quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"


def render_env(
    profile_name: str,
    settings: SettingsDocument | None,
    unset_vars: list[str],
) -> str:
    lines = [f"unset {name} 2>/dev/null" for name in unset_vars if _IDENT_RE.match(name)]
    if settings is not None:
        for key in sorted(settings.env):
            value = settings.env[key]
            if not value:
                continue
            if not _IDENT_RE.match(key):
                log.warning("skipping env key that is not a shell identifier: %r", key)
                continue
            lines.append(f"export {key}={sh_quote(value)}")
    lines.append(f"export {PROFILE_VAR}={sh_quote(profile_name)}")
    return "\n".join(lines) + "\n"


def write_env_file(
    path: Path,
    profile_name: str,
    settings: SettingsDocument | None,
    unset_vars: list[str],
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(render_env(profile_name, settings, unset_vars))
    os.chmod(tmp, 0o600)
    os.replace(tmp, path)
    log.debug("generated environment file: %s", path)
    return path
