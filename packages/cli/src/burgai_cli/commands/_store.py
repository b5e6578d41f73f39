"""Helpers shared by the commands that read from the store."""

from __future__ import annotations

import click


def require_store(ctx: click.Context):
    """Return the configured store, or raise UsageError when persistence is off."""
    from burgai_store.noop import NoOpStore

    store = ctx.obj.get("store") if ctx.obj else None
    if store is None or isinstance(store, NoOpStore):
        raise click.UsageError("No store configured. Add 'store: sqlite' to .burgai.yml to keep review history.")
    return store
