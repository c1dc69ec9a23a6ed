import logging
import os
import pathlib
import subprocess
import typing

import attr

from .utils import GitError

log = logging.getLogger(__name__)

FILTER_NAME = 'gitenc'


@attr.s(frozen=True)
class Entry:
    """A file in the index, as listed by 'git ls-files --stage'."""
    path: str = attr.ib()
    object_id: str = attr.ib()
    status: str = attr.ib(default='H')
    filter: typing.Optional[str] = attr.ib(default=None)
    diff: typing.Optional[str] = attr.ib(default=None)

    @property
    def managed(self) -> bool:
        return self.filter == FILTER_NAME and self.diff == FILTER_NAME


@attr.s(frozen=True)
class Git:
    root: pathlib.Path = attr.ib()

    def run(self,
            arguments: typing.Sequence[str],
            stdin: typing.Optional[bytes] = None,
            check: bool = True) -> subprocess.CompletedProcess:
        command = ('git', *arguments)
        log.debug(f"Running {' '.join(command)}")
        result = subprocess.run(
            command,
            cwd=self.root,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE)
        if check and result.returncode != 0:
            for line in result.stderr.decode('utf-8', 'replace').splitlines():
                log.error(line)
            raise GitError(f"Command {' '.join(command)} failed")
        return result

    def output(self, arguments: typing.Sequence[str]) -> bytes:
        return self.run(arguments).stdout

    # Inventory

    def enumerate_tracked(self) -> typing.List[Entry]:
        entries = []
        for record in self.output(['ls-files', '-c', '-s', '-t', '-z']).split(b'\0'):
            if not record:
                continue
            info, _, path = os.fsdecode(record).partition('\t')
            status, _mode, object_id, _stage = info.split()
            entries.append(Entry(path=path, object_id=object_id, status=status))

        attributes = self.read_attributes([entry.path for entry in entries])
        return [
            attr.evolve(entry, **attributes.get(entry.path, {}))
            for entry in entries
        ]

    def read_attributes(
            self,
            paths: typing.Sequence[str]) -> typing.Dict[str, typing.Dict[str, str]]:
        """Look up the filter and diff attributes of many paths at once."""
        if not paths:
            return {}
        stdin = b'\0'.join(os.fsencode(path) for path in paths) + b'\0'
        output = self.run(
            ['check-attr', '-z', '--stdin', 'filter', 'diff'],
            stdin=stdin).stdout
        fields = os.fsdecode(output).split('\0')

        attributes: typing.Dict[str, typing.Dict[str, str]] = {}
        for path, name, value in zip(fields[0::3], fields[1::3], fields[2::3]):
            attributes.setdefault(path, {})[name] = value
        return attributes

    def managed_files(self) -> typing.List[Entry]:
        return [entry for entry in self.enumerate_tracked() if entry.managed]

    def staged_object_id(self, path: str) -> typing.Optional[str]:
        output = self.output(['ls-files', '-s', '-z', '--', path])
        for record in output.split(b'\0'):
            if record:
                return os.fsdecode(record).split()[1]
        return None

    def read_staged_object(self, object_id: str) -> bytes:
        return self.output(['cat-file', 'blob', object_id])

    # Working tree

    def stage(self, path: str) -> None:
        """Add a file again, running the clean filter even if it looks unchanged."""
        self.run(['add', '--renormalize', '--', path])

    def restore_working_copy(self, path: str) -> None:
        """Rewrite a file from the index, running it through the smudge filter."""
        # An unchanged file would be skipped by checkout, so remove it first.
        working = self.root / path
        if working.is_file():
            working.unlink()
        self.run(['checkout', '--', path])

    def discard_all_and_reset(self) -> None:
        log.warning(f"Discarding all changes in {self.root}")
        self.run(['rm', '-r', '-q', '--cached', '--', '.'])
        self.run(['reset', '-q', '--hard'])

    # Configuration

    def config(self, name: str, value: str) -> None:
        self.run(['config', name, value])

    def unset_config(self, name: str) -> None:
        # Exit status 5 means the option was not set.
        result = self.run(['config', '--unset', name], check=False)
        if result.returncode not in (0, 5):
            raise GitError(f"Could not unset {name}")

    def register_filter(
            self,
            name: str,
            clean: str,
            smudge: str,
            required: bool = True) -> None:
        self.config(f'filter.{name}.clean', clean)
        self.config(f'filter.{name}.smudge', smudge)
        self.config(f'filter.{name}.required', 'true' if required else 'false')

    def register_textconv(self, name: str, command: str) -> None:
        self.config(f'diff.{name}.textconv', command)

    def unregister(self, name: str) -> None:
        for option in (
                f'filter.{name}.clean',
                f'filter.{name}.smudge',
                f'filter.{name}.required',
                f'diff.{name}.textconv'):
            self.unset_config(option)
