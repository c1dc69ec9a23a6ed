import logging
import pathlib
import typing

import click

from . import __doc__, __version__
from .doctor import Doctor
from .repository import Repository
from .utils import RepairFailed, find_git_directory

log = logging.getLogger(__name__)


def good(path: str) -> str:
    """Style a path to an encrypted file."""
    return click.style(path, fg='green')


def bad(path: str) -> str:
    """Style a path to a file that should be encrypted but isn't."""
    return click.style(path, fg='red')


class PathType(click.Path):
    def convert(self, value, param, ctx):
        return pathlib.Path(super().convert(value, param, ctx))


keyname_option = click.option(
    '-n', '--keyname', 'name',
    metavar='NAME',
    envvar='GITENC_KEYNAME',
    default=None,
    type=click.STRING,
    help="Name of the key to use, defaults to 'default'.")

seed_option = click.option(
    '-k', '--key', 'seed',
    metavar='SEED',
    default=None,
    type=click.STRING,
    help="Secret the key is derived from.")

refresh_option = click.option(
    '--refresh/--no-refresh',
    default=None,
    help="Discard all changes and check out every file again.")


def confirm_refresh(repository: Repository, refresh: typing.Optional[bool]) -> None:
    if refresh is None:
        refresh = click.confirm(
            "Refreshing rewrites every file in the repository and discards "
            "all changes, are you sure?",
            default=False)
    if refresh:
        repository.refresh()
        click.echo("Refreshed the working tree")


def write(data: bytes) -> None:
    stdout = click.get_binary_stream('stdout')
    stdout.write(data)
    stdout.flush()


@click.group(help=__doc__)
@click.option(
    '-p', '--path',
    type=PathType(
        file_okay=False,
        dir_okay=True,
        exists=True),
    default=find_git_directory,
    required=True,
    help="Defaults to the current git repository.")
@click.option(
    '-d', '--debug', 'debug',
    default=False,
    is_flag=True,
    help="Enable debug logging.")
@click.pass_context
def main(ctx, debug: bool, path: pathlib.Path):
    logging.basicConfig(level=(logging.DEBUG if debug else logging.WARNING))
    ctx.obj = Repository.open(path)


@main.command()
def version():
    """Show the application version."""
    click.echo(f"gitenc {__version__}")


@main.command()
@keyname_option
@seed_option
@refresh_option
@click.pass_obj
def init(
        repository: Repository,
        name: typing.Optional[str],
        seed: typing.Optional[str],
        refresh: typing.Optional[bool]):
    """
    Create a key and start encrypting files.

    Without --key a random key is generated. Writes a .gitattributes that
    encrypts every file, unless the repository already has one.
    """
    material = repository.init(name, seed)
    click.echo(f"Initialized gitenc with key {material.name!r}")
    for path in repository.unlock(material.name):
        click.echo(f"Decrypted {good(path)}")
    confirm_refresh(repository, refresh)


@main.command(name='set')
@keyname_option
@seed_option
@click.pass_obj
def set_key(
        repository: Repository,
        name: typing.Optional[str],
        seed: typing.Optional[str]):
    """
    Select the key used by the filters, replacing it when --key is given.

    Files that are already encrypted are not re-encrypted. Stage them
    again to encrypt them with the new key.
    """
    name = repository.set_key(name, seed)
    if seed:
        click.secho(
            f"Key {name!r} was replaced. Existing encrypted files still use "
            f"the old key until they are staged again.",
            fg='yellow')
    click.echo(f"Using key {name!r}")


@main.command()
@refresh_option
@click.pass_obj
def lock(repository: Repository, refresh: typing.Optional[bool]):
    """Stop decrypting files and show their encrypted form."""
    for path in repository.lock():
        click.echo(f"Locked {good(path)}")
    confirm_refresh(repository, refresh)


@main.command()
@keyname_option
@refresh_option
@click.pass_obj
def unlock(
        repository: Repository,
        name: typing.Optional[str],
        refresh: typing.Optional[bool]):
    """Decrypt files, stopping if any was encrypted with another key."""
    for path in repository.unlock(name):
        click.echo(f"Decrypted {good(path)}")
    confirm_refresh(repository, refresh)


@main.command()
@keyname_option
@click.option(
    '--fix/--no-fix',
    default=False,
    help="Stage unencrypted files again so they are encrypted.")
@click.pass_obj
def doctor(repository: Repository, name: typing.Optional[str], fix: bool):
    """Check that every managed file is encrypted in the index."""
    report = Doctor(repository.git, repository.pipeline(name)).check(fix=fix)

    sections = (
        ("Encrypted files:", report.encrypted, good),
        ("Unencrypted files:", report.unencrypted, bad),
        ("Fixed files:", report.fixed, good),
        ("Files that could not be fixed:", report.unfixable, bad),
        ("Unmanaged files:", report.unmanaged, str),
    )
    for title, paths, style in sections:
        if paths:
            click.echo(title)
            for path in paths:
                click.echo(f"\t{style(path)}")

    if report.unfixable:
        raise RepairFailed(f"Failed to fix {len(report.unfixable)} file(s)")


@main.command()
@keyname_option
@click.pass_obj
def clean(repository: Repository, name: typing.Optional[str]):
    """Encrypt standard input to standard output (git clean filter)."""
    data = click.get_binary_stream('stdin').read()
    write(repository.pipeline(name).clean(data))


@main.command()
@keyname_option
@click.pass_obj
def smudge(repository: Repository, name: typing.Optional[str]):
    """Decrypt standard input to standard output (git smudge filter)."""
    data = click.get_binary_stream('stdin').read()
    write(repository.pipeline(name).smudge(data))


@main.command()
@keyname_option
@click.argument(
    'file',
    type=PathType(exists=True, dir_okay=False),
    required=True)
@click.pass_obj
def diff(repository: Repository, name: typing.Optional[str], file: pathlib.Path):
    """Decrypt a file to standard output (git diff textconv)."""
    write(repository.pipeline(name).diff(file))
