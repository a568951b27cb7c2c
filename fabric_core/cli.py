from __future__ import annotations

from collections.abc import Awaitable, Callable
from functools import partial
from typing import TypeVar

import click

T = TypeVar("T")


def _run(coro_fn: Callable[[], Awaitable[T]]) -> T:
    """Run an async command body with logging configured from settings."""
    import anyio

    from fabric_core.log import setup_logging
    from fabric_core.settings import get_settings

    settings = get_settings()
    setup_logging(settings.log_level, debug_http=settings.debug_logging)
    return anyio.run(coro_fn)


class _ClickConfirmer:
    async def confirm(self, message: str) -> bool | None:
        from anyio import to_thread

        # click.confirm blocks on stdin
        return await to_thread.run_sync(partial(click.confirm, message, default=False))


class _ClickNotifier:
    def show_error(self, message: str) -> None:
        click.secho(message, fg="red", err=True)

    def show_information(self, message: str) -> None:
        click.echo(message)


@click.group()
def main() -> None:
    """fabric-core - workspace and artifact services for Fabric hosts."""


@main.command("open")
@click.argument("uri")
@click.option("--yes", "-y", is_flag=True, default=False, help="Open without asking for confirmation.")
def open_link(uri: str, yes: bool) -> None:
    """Handle a deep link such as ``fabric://open/?workspaceId=...&artifactId=...``."""
    from fabric_core.app import FabricCore
    from fabric_core.deeplink import DeepLinkResult
    from fabric_core.models.enums import DeepLinkState

    class _Yes:
        async def confirm(self, message: str) -> bool | None:
            return True

    async def _body() -> DeepLinkResult:
        async with await FabricCore.from_settings(
            confirmer=_Yes() if yes else _ClickConfirmer(), notifier=_ClickNotifier()
        ) as core:
            return await core.deep_link_handler.handle(uri)

    result = _run(_body)
    if result.location:
        click.echo(result.location)
    if result.state == DeepLinkState.ERROR:
        raise SystemExit(1)


@main.command()
def workspaces() -> None:
    """List the workspaces visible to the signed-in user."""
    from fabric_core.app import FabricCore

    async def _body() -> None:
        async with await FabricCore.from_settings(notifier=_ClickNotifier()) as core:
            items = await core.workspace_manager.list_workspaces()
        for ws in sorted(items, key=lambda w: w.display_name.lower()):
            click.echo(f"{ws.id}  {ws.display_name}")

    _run(_body)


@main.command()
@click.argument("workspace_id")
@click.option("--tree", is_flag=True, default=False, help="Group items by type.")
def items(workspace_id: str, tree: bool) -> None:
    """List the items of a workspace."""
    from fabric_core.app import FabricCore
    from fabric_core.errors import NotFoundError

    async def _body() -> None:
        async with await FabricCore.from_settings(notifier=_ClickNotifier()) as core:
            try:
                if tree:
                    workspace = await core.workspace_manager.open_workspace_by_id(workspace_id)
                    root = await core.tree_builder.build(workspace)
                    for group in root.children:
                        click.echo(group.label)
                        for node in group.children:
                            click.echo(f"  {node.label}")
                    return
                artifacts = await core.artifact_manager.list_artifacts(workspace_id)
            except NotFoundError as exc:
                raise click.ClickException(exc.message) from None
        for artifact in sorted(artifacts, key=lambda a: (a.type, a.display_name.lower())):
            click.echo(f"{artifact.id}  {artifact.type:<20} {artifact.display_name}")

    _run(_body)


@main.command()
def capacities() -> None:
    """List the capacities new workspaces can be assigned to."""
    from fabric_core.app import FabricCore

    async def _body() -> None:
        async with await FabricCore.from_settings(notifier=_ClickNotifier()) as core:
            items = await core.capacity_manager.list_capacities()
        for capacity in sorted(items, key=lambda c: c.display_name.lower()):
            click.echo(f"{capacity.id}  {capacity.sku:<6} {capacity.state:<8} {capacity.region}  {capacity.display_name}")

    _run(_body)


@main.command()
def env() -> None:
    """Show the active Fabric environment."""
    from fabric_core.app import FabricCore

    async def _body() -> None:
        async with await FabricCore.from_settings() as core:
            current = core.environment.get_current()
        click.echo(f"{current.env}  {current.shared_uri or '-'}  {current.portal_uri or '-'}")

    _run(_body)
