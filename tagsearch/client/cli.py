"""Command line client: upload, status and search."""

import asyncio
import mimetypes
from pathlib import Path

import click

from tagsearch.client.api import ClientError, TagSearchClient
from tagsearch.client.gallery import Gallery
from tagsearch.client.uploader import (
    MAX_POLL_ATTEMPTS,
    POLL_INTERVAL,
    UploadSession,
)
from tagsearch.image_service.service import MAX_SEARCH_TERMS


@click.group()
@click.option('--api-url', envvar='TAGSEARCH_API_URL', default=None, help='API base URL')
@click.pass_context
def cli(ctx, api_url):
    """Upload images and search them by tag."""
    ctx.ensure_object(dict)
    ctx.obj['api_url'] = api_url


@cli.command(name='upload')
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--interval', default=POLL_INTERVAL, type=float, help='Seconds between status checks')
@click.option('--max-attempts', default=MAX_POLL_ATTEMPTS, type=int, help='Status checks before giving up')
@click.pass_context
def upload_command(ctx, path: Path, interval: float, max_attempts: int):
    """Upload an image and wait for its tags."""
    content_type = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'

    def show_progress(session: UploadSession):
        if session.message:
            click.echo(session.message)

    async def run():
        gallery = Gallery()
        api = TagSearchClient(ctx.obj['api_url'])
        try:
            async with UploadSession(
                api=api,
                gallery=gallery,
                poll_interval=interval,
                max_attempts=max_attempts,
            ) as session:
                session.on_state_change(show_progress)
                record = await session.upload(path.name, path.read_bytes(), content_type)
                error = session.error
        finally:
            await api.aclose()
        if record is None:
            raise click.ClickException(error or 'Upload failed')
        click.echo(gallery.render())

    try:
        asyncio.run(run())
    except ClientError as e:
        raise click.ClickException(str(e))


@cli.command(name='status')
@click.argument('image_id')
@click.pass_context
def status_command(ctx, image_id: str):
    """Show an image record."""

    async def run():
        api = TagSearchClient(ctx.obj['api_url'])
        try:
            record = await api.get_image_status(image_id)
        finally:
            await api.aclose()
        click.echo(f"Status: {record.get('status')}")
        gallery = Gallery()
        gallery.add(record)
        click.echo(gallery.render())

    try:
        asyncio.run(run())
    except ClientError as e:
        raise click.ClickException(str(e))


@cli.command(name='search')
@click.argument('terms', nargs=-1, required=True)
@click.option('--filter', 'keyword_filter', default='', help='Narrow results locally by tag substring')
@click.pass_context
def search_command(ctx, terms, keyword_filter: str):
    """Find images tagged with every TERM."""
    keywords = [t for term in terms for t in term.lower().split()]
    if not keywords:
        raise click.UsageError('Please enter at least one search term')
    if len(keywords) > MAX_SEARCH_TERMS:
        raise click.UsageError(f'Too many search terms. Maximum {MAX_SEARCH_TERMS} allowed.')

    async def run():
        api = TagSearchClient(ctx.obj['api_url'])
        try:
            return await api.search_images(keywords)
        finally:
            await api.aclose()

    try:
        images = asyncio.run(run())
    except ClientError as e:
        raise click.ClickException(str(e))

    gallery = Gallery()
    gallery.replace(images)
    click.echo(f"Found {len(images)} image(s) for: {' '.join(keywords)}")
    click.echo(gallery.render(keyword_filter))


@cli.command(name='serve')
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=None, type=int, help='Port (defaults to PORT setting)')
def serve_command(host: str, port):
    """Run the API server."""
    import uvicorn
    from tagsearch.settings import settings

    uvicorn.run('tagsearch.main:app', host=host, port=port or settings.port)


if __name__ == '__main__':
    cli()
