"""claude-switch CLI エントリポイント（`csw` / `claude-switch`）。"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass

import typer
from rich.console import Console

from claude_switch.activation import ActivationResult, Activator
from claude_switch.classify import AuthMode
from claude_switch.config import DEFAULT_BASE_URL, SwitchConfig, load_config
from claude_switch.errors import NotFound, ProfileError
from claude_switch.keychain import detect_keychain
from claude_switch.logging_setup import setup_logging
from claude_switch.operations import (
    create_api_key_profile,
    create_oauth_profile,
    describe_live,
    migrate_from_secrets,
    repair_profiles,
    save_profile,
    summarize_profiles,
)
from claude_switch.process_check import is_claude_running
from claude_switch.store import ProfileStore
from claude_switch.tracker import CurrentProfileTracker

APP_HELP = "🔀 Claude CLI のアカウント（OAuth / API key）をプロファイル単位で切り替える"

app = typer.Typer(add_completion=False, help=APP_HELP, no_args_is_help=True)
console = Console()

_SECRET_HINTS = ("KEY", "TOKEN", "SECRET")


@dataclass
class Services:
    cfg: SwitchConfig
    store: ProfileStore
    tracker: CurrentProfileTracker
    activator: Activator


def _confirm(message: str) -> bool:
    return typer.confirm(message, default=False)


def build_services(cfg: SwitchConfig) -> Services:
    store = ProfileStore(cfg)
    tracker = CurrentProfileTracker(cfg, store)
    activator = Activator(
        cfg=cfg,
        store=store,
        keychain=detect_keychain(cfg),
        tracker=tracker,
        process_probe=lambda: is_claude_running(cfg.process_patterns),
        confirm=_confirm,
    )
    return Services(cfg=cfg, store=store, tracker=tracker, activator=activator)


@contextmanager
def _errors():
    try:
        yield
    except NotFound as e:
        console.print(f"❌ {e}", style="red")
        if e.available:
            console.print("利用可能なプロファイル:", style="cyan")
            for name in e.available:
                console.print(f"    {name}")
        raise typer.Exit(code=1) from e
    except ProfileError as e:
        console.print(f"❌ {e}", style="red")
        raise typer.Exit(code=1) from e


def _mask(key: str, value: str) -> str:
    if any(h in key.upper() for h in _SECRET_HINTS) and value:
        return "****" + value[-4:]
    return value


def _print_warnings(warnings: list[str]) -> None:
    for w in warnings:
        console.print(f"  ⚠️  {w}", style="yellow")


def _print_activation(result: ActivationResult) -> None:
    _print_warnings(result.warnings)
    console.print(f"✅ プロファイルを切り替えました: {result.name}", style="green")
    label = "OAuth" if result.mode is AuthMode.OAUTH else "API Key"
    console.print(f"  Auth Type: {label}", style="dim")


def _first_run(svc: Services) -> None:
    if not svc.store.snapshot_originals():
        return
    console.print("⚠️  初回セットアップ: 元の Claude 設定をバックアップしました", style="yellow")
    console.print(f"  {svc.cfg.backups_dir}", style="dim")
    if not typer.confirm("現在の設定をプロファイルとして保存しますか?", default=False):
        return
    name = typer.prompt("プロファイル名 (例: anthropic, z.ai)", default="", show_default=False)
    name = name.strip()
    if not name:
        return
    with _errors():
        svc.store.capture_from_live(name)
        warnings: list[str] = []
        secret = svc.activator.keychain_call(warnings, "backup", svc.activator.keychain.read)
        if isinstance(secret, str) and secret:
            svc.store.write_blob(name, secret)
        _print_warnings(warnings)
    console.print(f"✅ 現在の設定をプロファイル '{name}' として保存しました", style="green")


@app.callback()
def main(ctx: typer.Context) -> None:
    cfg = load_config()
    setup_logging(log_dir=cfg.log_dir, level=cfg.log_level)
    svc = build_services(cfg)
    svc.store.init()
    _first_run(svc)
    ctx.obj = svc


def _svc(ctx: typer.Context) -> Services:
    return ctx.obj


@app.command("list")
def list_(ctx: typer.Context) -> None:
    """プロファイル一覧を表示する。"""
    svc = _svc(ctx)
    with _errors():
        summaries = summarize_profiles(svc.store, svc.tracker)
    if not summaries:
        console.print("⚠️  プロファイルがありません。作成: csw new <name>", style="yellow")
        return

    console.print("利用可能なプロファイル:\n", style="cyan")
    for s in summaries:
        if s.active:
            console.print(f"  [green]●[/green] {s.name} [yellow](active)[/yellow] - {s.provider}")
        else:
            console.print(f"    {s.name} - {s.provider}")
        if s.email:
            console.print(f"    [blue]Account:[/blue] {s.email}")
        if s.base_url:
            console.print(f"    [blue]URL:[/blue] {s.base_url}")
        if s.model:
            console.print(f"    [blue]Model:[/blue] {s.model}")
    console.print()


@app.command()
def current(ctx: typer.Context) -> None:
    """現在のプロファイルと Live Configuration を表示する。"""
    svc = _svc(ctx)
    with _errors():
        live = describe_live(svc.cfg, svc.tracker)
    console.print(f"現在のプロファイル: {live.current}", style="cyan")
    if not live.has_auth:
        return
    console.print(f"  [blue]Account:[/blue] {live.email or 'API Key'}")
    if live.has_settings:
        for key, value in live.env.items():
            console.print(f"  {key}: {_mask(key, value)}", style="dim")
        console.print(f"  [blue]Model:[/blue] {live.model or 'default'}")


@app.command()
def new(
    ctx: typer.Context,
    name: str = typer.Argument("", help="プロファイル名（空なら対話）"),
    oauth: bool = typer.Option(False, "--oauth", help="OAuth（/login）プロファイルとして作る"),
    api_key: str = typer.Option("", "--api-key", help="API key（空なら対話）"),
    base_url: str = typer.Option("", "--base-url", help=f"Base URL（既定: {DEFAULT_BASE_URL}）"),
) -> None:
    """新しいプロファイルを作って有効化する。"""
    svc = _svc(ctx)
    if not name:
        name = typer.prompt("プロファイル名 (例: anthropic, z.ai)", default="", show_default=False)
        name = name.strip()
    if not name:
        console.print("❌ プロファイル名が必要です", style="red")
        raise typer.Exit(code=1)
    if svc.store.exists(name):
        console.print(f"❌ プロファイル '{name}' は既に存在します", style="red")
        console.print(f"  削除するには: csw delete {name}", style="dim")
        raise typer.Exit(code=1)

    if not oauth and not api_key:
        console.print("認証方式を選んでください:")
        console.print("  1) OAuth (Anthropic アカウントでログイン)")
        console.print("  2) API Key (z.ai やカスタムエンドポイント)")
        choice = typer.prompt("番号 (1 or 2)", default="", show_default=False).strip()
        if choice == "1":
            oauth = True
        elif choice != "2":
            console.print("❌ 無効な選択です", style="red")
            raise typer.Exit(code=1)

    with _errors():
        if oauth:
            result = create_oauth_profile(svc.activator, name)
            _print_activation(result)
            console.print("\n次の手順:", style="bold green")
            console.print("  1. `claude` を起動する")
            console.print("  2. Claude の中で `/login` を実行する")
            console.print("  3. ブラウザでログインを完了する（トークンはこのプロファイルに保存される）")
            return

        if not api_key:
            api_key = typer.prompt("API Key", hide_input=True, default="", show_default=False)
        if not base_url:
            base_url = typer.prompt("Base URL", default=DEFAULT_BASE_URL)
        result = create_api_key_profile(svc.activator, name, api_key, base_url)
    _print_activation(result)


@app.command()
def save(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="保存先のプロファイル名"),
) -> None:
    """現在の設定をプロファイルとして保存し、有効化する。"""
    svc = _svc(ctx)
    with _errors():
        result = save_profile(svc.activator, name, confirm=_confirm)
    _print_warnings(result.warnings)
    _print_activation(result.activation)
    console.print(f"✅ プロファイル '{name}' を保存しました ({result.verdict.value})", style="green")


@app.command()
def use(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="切り替え先のプロファイル名"),
) -> None:
    """プロファイルを切り替える。"""
    svc = _svc(ctx)
    with _errors():
        result = svc.activator.activate(name)
    _print_activation(result)


@app.command()
def delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="削除するプロファイル名"),
    yes: bool = typer.Option(False, "--yes", "-y", help="確認せずに削除する"),
) -> None:
    """プロファイルを削除する（元に戻せない）。"""
    svc = _svc(ctx)
    with _errors():
        if not svc.store.exists(name):
            raise NotFound(f"profile '{name}' not found")
        if not yes and not typer.confirm(
            f"プロファイル '{name}' を削除しますか? 元に戻せません", default=False
        ):
            console.print("キャンセルしました", style="yellow")
            raise typer.Exit(code=1)
        svc.store.delete(name)
    console.print(f"✅ プロファイル '{name}' を削除しました", style="green")


@app.command()
def repair(ctx: typer.Context) -> None:
    """OAuth と API key が混ざったプロファイルを修復する。"""
    svc = _svc(ctx)
    with _errors():
        report = repair_profiles(svc.store, svc.cfg.oauth_name_patterns)
    for action in report.repaired:
        console.print(f"  ⚠️  修復: {action.name} ({action.reason})", style="yellow")
        console.print(f"     → settings.json を {action.moved_to.name} に退避", style="dim")
    for name in report.unreadable:
        console.print(f"  ❌ 読めないプロファイル: {name}", style="red")
    if report.repaired:
        console.print(
            f"✅ {len(report.repaired)} 件修復しました（{report.checked} 件中）", style="green"
        )
    else:
        console.print(f"✅ 問題はありません（{report.checked} 件チェック）", style="green")


@app.command()
def migrate(ctx: typer.Context) -> None:
    """~/.secrets の API key からプロファイルを作る。"""
    svc = _svc(ctx)
    with _errors():
        report = migrate_from_secrets(svc.store, svc.cfg.secrets_path, svc.cfg.providers)
    for name in report.skipped:
        console.print(f"  ⚠️  '{name}' は既に存在するのでスキップ", style="yellow")
    if not report.created:
        expected = ", ".join(p.env_var for p in svc.cfg.providers)
        console.print(f"⚠️  {svc.cfg.secrets_path} に API key が見つかりません", style="yellow")
        console.print(f"  想定する変数: {expected}", style="dim")
        return
    console.print(f"✅ {len(report.created)} 件のプロファイルを作成しました", style="green")
    for name in report.created:
        console.print(f"  csw use {name}", style="dim")


# 旧コマンド名との互換
app.command("ls", hidden=True)(list_)
app.command("show", hidden=True)(current)
app.command("create", hidden=True)(new)
app.command("add", hidden=True)(save)
app.command("switch", hidden=True)(use)
app.command("rm", hidden=True)(delete)
app.command("fix", hidden=True)(repair)
