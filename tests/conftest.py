import os
import pathlib
import shutil
import subprocess
import typing

import attr
import click.testing
import pytest

import gitenc.cli
from gitenc.filters import Pipeline
from gitenc.keys import KeyMaterial, KeyStore
from gitenc.utils import GitError
from gitenc.vcs import FILTER_NAME, Entry

PROJECT = pathlib.Path(__file__).parent.parent

SEED = 'abc123def456ghi789jkl012mno345pq'

requires_git = pytest.mark.skipif(
    shutil.which('git') is None,
    reason="git is not installed")


@pytest.fixture()
def keys(tmp_path: pathlib.Path) -> KeyStore:
    return KeyStore(tmp_path / 'keys')


@pytest.fixture()
def material(keys: KeyStore) -> KeyMaterial:
    return keys.resolve('default', SEED)


@pytest.fixture()
def pipeline(keys: KeyStore, material: KeyMaterial) -> Pipeline:
    return Pipeline(keys, material.name)


@attr.s
class FakeGit:
    """Stands in for git: an index of blobs and a working tree of plaintext."""
    pipeline: Pipeline = attr.ib()
    working: typing.Dict[str, bytes] = attr.ib(factory=dict)
    index: typing.Dict[str, str] = attr.ib(factory=dict)
    objects: typing.Dict[str, bytes] = attr.ib(factory=dict)
    managed: typing.Set[str] = attr.ib(factory=set)
    broken: typing.Set[str] = attr.ib(factory=set)
    failing: typing.Set[str] = attr.ib(factory=set)
    staged: typing.List[str] = attr.ib(factory=list)

    def add(self, path: str, data: bytes, managed: bool = True, clean: bool = True):
        self.working[path] = data
        if managed:
            self.managed.add(path)
        self._write(path, self.pipeline.clean(data) if clean and managed else data)

    def _write(self, path: str, blob: bytes):
        object_id = f'{len(self.objects):040x}'
        self.objects[object_id] = blob
        self.index[path] = object_id

    def enumerate_tracked(self):
        name = FILTER_NAME
        return [
            Entry(
                path=path,
                object_id=object_id,
                filter=name if path in self.managed else 'unspecified',
                diff=name if path in self.managed else 'unspecified')
            for path, object_id in sorted(self.index.items())
        ]

    def read_staged_object(self, object_id: str) -> bytes:
        return self.objects[object_id]

    def staged_object_id(self, path: str) -> typing.Optional[str]:
        return self.index.get(path)

    def stage(self, path: str):
        self.staged.append(path)
        if path in self.failing:
            raise GitError(f"Command git add --renormalize -- {path} failed")
        data = self.working[path]
        self._write(path, data if path in self.broken else self.pipeline.clean(data))


@pytest.fixture()
def fake_git(pipeline: Pipeline) -> FakeGit:
    return FakeGit(pipeline)


def git(root: pathlib.Path, *arguments: str, stdin: bytes = None) -> bytes:
    return subprocess.run(
        ('git', *arguments),
        cwd=root,
        input=stdin,
        stdout=subprocess.PIPE,
        check=True).stdout


@pytest.fixture()
def repo(tmp_path: pathlib.Path, monkeypatch) -> pathlib.Path:
    """An empty git repository where git can run 'python -m gitenc'."""
    root = tmp_path / 'repo'
    root.mkdir()
    pythonpath = os.environ.get('PYTHONPATH')
    monkeypatch.setenv(
        'PYTHONPATH',
        os.pathsep.join(filter(None, [str(PROJECT), pythonpath])))
    git(root, 'init', '-q')
    git(root, 'config', 'user.name', 'Gitenc Tests')
    git(root, 'config', 'user.email', 'gitenc@example.invalid')
    return root


@pytest.fixture()
def invoke(repo: pathlib.Path):
    def invoke_func(arguments: typing.Sequence[str], stdin: bytes = None, ok: bool = True):
        assert all(isinstance(arg, str) for arg in arguments)
        runner = click.testing.CliRunner()
        result = runner.invoke(
            gitenc.cli.main, ['-p', str(repo), *arguments], input=stdin)
        if ok and result.exit_code != 0:
            message = f"Command gitenc {' '.join(arguments)} failed: {result.output}"
            raise Exception(message) from result.exception
        return result

    return invoke_func
