"""
Command line for the local citation library.

Combines subcommands: import, export, list, search, tags, authors, citekey
"""

import sys

import click

from refmirror.audit.logger import get_audit_logger
from refmirror.bibtex import citation_key, export_bibtex, write_bib_file
from refmirror.config import ConfigError, load_config
from refmirror.errors import IOFailure
from refmirror.library import all_authors, all_tags, import_bibtex, search_citations
from refmirror.models import Visibility
from refmirror.store import JsonLibraryStore
from refmirror.sync import sync_state


def _fail(message: str):
    click.echo(click.style(f"✗ {message}", fg="red"), err=True)
    sys.exit(1)


def _load_library(ctx):
    try:
        return ctx.obj['store'].load()
    except IOFailure as e:
        _fail(str(e))


@click.group()
@click.version_option(package_name='refmirror')
@click.option('--config', type=click.Path(exists=True), help='Config file path')
@click.option('--library', type=click.Path(), help='Library JSON file (overrides config)')
@click.pass_context
def cli(ctx, config, library):
    """refmirror - personal bibliography with encrypted network mirroring."""
    try:
        cfg = load_config(config)
    except ConfigError as e:
        _fail(f"Config error: {e}")

    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg
    ctx.obj['store'] = JsonLibraryStore(library or cfg.library_path)


@cli.command('import')
@click.argument('bibfile', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_cmd(ctx, bibfile):
    """
    Import a BibTeX file. Imported entries are private.

    Example:
        refmirror import references.bib
    """
    try:
        with open(bibfile, 'r', encoding='utf-8') as f:
            content = f.read()
        report = import_bibtex(
            content,
            ctx.obj['store'],
            audit_logger=get_audit_logger(ctx.obj['config'].audit_log),
            source=bibfile,
        )
    except (OSError, UnicodeDecodeError, IOFailure) as e:
        _fail(f"Import failed: {e}")

    if report.total == 0:
        click.echo(click.style("⚠ No references found in the BibTeX input.", fg="yellow"))
        return

    click.echo(click.style(
        f"✓ Imported {report.succeeded} of {report.total} references", fg="green"
    ))
    if report.failed:
        click.echo(click.style(f"⚠ {report.failed} failed:", fg="yellow"))
        for failure in report.failures:
            click.echo(f"  - {failure}")


@cli.command('export')
@click.argument('outfile', type=click.Path(dir_okay=False), required=False)
@click.option('--visibility', type=click.Choice(['public', 'private']),
              help='Only export entries with this visibility')
@click.pass_context
def export_cmd(ctx, outfile, visibility):
    """Export the library as BibTeX (stdout when no OUTFILE)."""
    citations = _load_library(ctx)
    if visibility:
        citations = search_citations(citations, visibility=Visibility(visibility))

    if not outfile:
        click.echo(export_bibtex(citations), nl=False)
        return

    try:
        write_bib_file(outfile, citations)
    except IOFailure as e:
        _fail(str(e))
    click.echo(click.style(f"✓ Exported {len(citations)} references to {outfile}", fg="green"))


@cli.command('list')
@click.pass_context
def list_cmd(ctx):
    """List library entries with visibility and sync state."""
    citations = _load_library(ctx)
    if not citations:
        click.echo("Library is empty.")
        return

    for c in citations:
        key = citation_key(c.authors, c.year, c.title)
        state = sync_state(c).value
        colour = "green" if c.is_public else "magenta"
        click.echo(
            f"{click.style(c.visibility.value.ljust(7), fg=colour)} "
            f"{state.ljust(8)} {key.ljust(24)} {c.title}"
        )


@cli.command('search')
@click.argument('query', required=False, default='')
@click.option('--author', 'authors', multiple=True, help='Author substring (repeatable)')
@click.option('--tag', 'tags', multiple=True, help='Tag (repeatable)')
@click.option('--year', type=int, help='Exact year')
@click.pass_context
def search_cmd(ctx, query, authors, tags, year):
    """Search titles, authors and containers."""
    results = search_citations(
        _load_library(ctx), query,
        authors=list(authors) or None,
        year=year,
        tags=list(tags) or None,
    )
    for c in results:
        click.echo(f"{c.id}  {c.title} ({c.year or 'n.d.'})")
    click.echo(click.style(f"{len(results)} match(es)", fg="cyan"))


@cli.command('tags')
@click.pass_context
def tags_cmd(ctx):
    """List all tags in the library."""
    for tag in all_tags(_load_library(ctx)):
        click.echo(tag)


@cli.command('authors')
@click.pass_context
def authors_cmd(ctx):
    """List all authors in the library."""
    for author in all_authors(_load_library(ctx)):
        click.echo(author)


@cli.command('citekey')
@click.option('--title', required=True)
@click.option('--author', 'authors', multiple=True, help='Author in citation order (repeatable)')
@click.option('--year', type=int)
def citekey_cmd(title, authors, year):
    """Print the citation key for the given fields."""
    click.echo(citation_key(list(authors), year, title))


if __name__ == '__main__':
    cli()
