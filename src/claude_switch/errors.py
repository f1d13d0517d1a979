"""プロファイル操作の例外。

CLI は `ProfileError` を捕まえて赤字で表示し、exit code 1 で終了する。
`AdapterUnavailable` だけは engine 側で warning に格下げされ、外には出ない。
"""

from __future__ import annotations


class ProfileError(Exception):
    """プロファイル操作の失敗（基底）。"""


class NotFound(ProfileError):
    def __init__(self, message: str, *, available: list[str] | None = None) -> None:
        super().__init__(message)
        self.available = list(available or [])


class AlreadyExists(ProfileError):
    pass


class InvalidProfileName(ProfileError):
    pass


class NoCredential(ProfileError):
    """OAuth も API key も見つからない。"""


class AmbiguousCredential(ProfileError):
    """OAuth と API key が両方ある（確認なしでは保存しない）。"""


class ContractViolation(ProfileError):
    """ApiKey 判定なのに settings.json が無い等、ストアが壊れている。"""


class DocumentError(ProfileError):
    """JSON ドキュメントが読めない。"""


class AdapterUnavailable(ProfileError):
    """secure store（keychain）が使えない。常に非致命。"""


class OperationCancelled(ProfileError):
    """ユーザーが確認で No を選んだ。"""
