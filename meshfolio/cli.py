"""
Meshfolio Command Line Interface.

Provides CLI commands for running the server and rendering thumbnails.
"""

import os
import json
import click
import logging

from meshfolio.config import get_config


def _scheduler(config):
    from meshfolio.core.storage import LocalStorage
    from meshfolio.core.jobs import ThumbnailScheduler

    config.init_dirs()
    return ThumbnailScheduler(LocalStorage(config.STORAGE_ROOT), config)


@click.group()
@click.option('--env', default=None, help='Environment (development/production/testing)')
@click.pass_context
def cli(ctx, env):
    """Meshfolio STL thumbnail server."""
    if env:
        os.environ['MESHFOLIO_ENV'] = env
    ctx.ensure_object(dict)
    ctx.obj['config'] = get_config(env)


@cli.command()
@click.option('--host', default=None, help='Host to bind to')
@click.option('--port', default=None, type=int, help='Port to bind to')
@click.option('--scan/--no-scan', default=True, help='Queue missing thumbnails at startup')
@click.pass_context
def serve(ctx, host, port, scan):
    """Run the web server and thumbnail scheduler on one thread."""
    from meshfolio.app import create_app
    from meshfolio.server import serve as serve_loop

    config = ctx.obj['config']
    scheduler = _scheduler(config)
    app = create_app(config, scheduler)

    if scan:
        scheduler.enqueue_missing()

    serve_loop(
        app,
        scheduler,
        host=host or config.HOST,
        port=port or config.PORT,
        poll_interval=config.POLL_INTERVAL
    )


@cli.command()
@click.argument('path')
@click.pass_context
def render(ctx, path):
    """Render the thumbnail for one mesh (storage path, e.g. /meshes/cube.stl)."""
    from meshfolio.core.thumbnails import find_thumbnail

    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')

    config = ctx.obj['config']
    scheduler = _scheduler(config)

    def show_progress():
        progress = scheduler.snapshot()
        if progress.busy:
            click.echo(f"\r  {progress.percent:3d}% {progress.status[:60]:<60}", nl=False)

    scheduler.yield_hook = show_progress
    scheduler.enqueue(path)
    scheduler.drain()
    click.echo()

    thumb = find_thumbnail(scheduler.storage, path, config.THUMBNAIL_DIR, config.MESH_DIR)
    if scheduler.stats['failed'] or not thumb:
        raise click.ClickException(f"Thumbnail render failed for {path} (see log)")
    click.echo(f"✓ {thumb}")


@cli.command()
@click.argument('path')
@click.pass_context
def name(ctx, path):
    """Show the canonical path and thumbnail path for a mesh."""
    from meshfolio.core.paths import canonicalize_path
    from meshfolio.core.thumbnails import thumbnail_path

    config = ctx.obj['config']
    click.echo(f"canonical: {canonicalize_path(path, config.MESH_DIR)}")
    click.echo(f"thumbnail: {thumbnail_path(path, config.THUMBNAIL_DIR, config.MESH_DIR)}")


@cli.command()
@click.option('--dry-run', is_flag=True, help='Only report what would be queued')
@click.pass_context
def scan(ctx, dry_run):
    """Render thumbnails for every mesh that has none."""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(message)s')

    config = ctx.obj['config']
    scheduler = _scheduler(config)

    counts = scheduler.enqueue_missing()
    click.echo(f"Scan: {counts}")
    if dry_run:
        return

    scheduler.drain()
    click.echo(f"Complete: {scheduler.stats}")


@cli.command()
@click.option('--url', default=None, help='Server base URL (default: http://127.0.0.1:PORT)')
@click.pass_context
def status(ctx, url):
    """Show thumbnail progress of a running server."""
    import requests

    config = ctx.obj['config']
    base = url or f"http://127.0.0.1:{config.PORT}"
    try:
        resp = requests.get(f"{base}/api/thumbnails/status", timeout=5)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise click.ClickException(f"Could not reach {base}: {e}")
    click.echo(json.dumps(resp.json(), indent=2))


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
