import logging
import pathlib
import shlex
import sys
import typing

import attr

from . import envelope
from .crypto import digest128
from .filters import Pipeline
from .keys import KeyMaterial, KeyStore, Seed, key_name
from .utils import (
    AlreadyInitialized,
    KeyMismatch,
    NotInitialized,
    find_metadata_directory,
)
from .vcs import FILTER_NAME, Git

log = logging.getLogger(__name__)

GITATTRIBUTES = (
    f"* filter={FILTER_NAME} diff={FILTER_NAME}\n"
    ".gitattributes !filter !diff\n"
)


def filter_command(command: str, name: str) -> str:
    """The shell command git runs for one of our filters."""
    python = shlex.quote(sys.executable)
    return f"{python} -m gitenc {command} --keyname {shlex.quote(name)}"


@attr.s(frozen=True)
class Repository:
    """Everything a command needs to know about the repository it runs in."""
    root: pathlib.Path = attr.ib()
    git_dir: pathlib.Path = attr.ib()
    git: Git = attr.ib()
    keys: KeyStore = attr.ib()

    @classmethod
    def open(cls, root: pathlib.Path) -> 'Repository':
        root = root.resolve()
        git_dir = find_metadata_directory(root)
        return cls(
            root=root,
            git_dir=git_dir,
            git=Git(root),
            keys=KeyStore.for_repository(git_dir))

    def pipeline(self, name: typing.Optional[str]) -> Pipeline:
        return Pipeline(self.keys, name)

    def require_initialized(self) -> None:
        if not self.keys.initialized():
            raise NotInitialized(
                "gitenc is not initialized in this repository, run 'gitenc init'")

    def register(self, name: str) -> None:
        log.info(f"Registering filters with key {name!r}")
        self.git.register_filter(
            FILTER_NAME,
            clean=filter_command('clean', name),
            smudge=filter_command('smudge', name),
            required=True)
        self.git.register_textconv(FILTER_NAME, filter_command('diff', name))

    def write_gitattributes(self) -> bool:
        path = self.root / '.gitattributes'
        if path.exists():
            log.warning(f"{path} already exists, not overwriting it")
            return False
        path.write_text(GITATTRIBUTES)
        return True

    def init(
            self,
            name: typing.Optional[str],
            seed: typing.Optional[Seed] = None) -> KeyMaterial:
        """Create the key store and the first key."""
        if self.keys.initialized():
            raise AlreadyInitialized("gitenc is already initialized")
        material = self.keys.resolve(key_name(name), seed)
        self.write_gitattributes()
        log.info(f"Initialized gitenc in {self.root}")
        return material

    def set_key(
            self,
            name: typing.Optional[str],
            seed: typing.Optional[Seed] = None) -> str:
        """
        Switch the filters to another key, replacing it if a seed is given.

        Files that are already encrypted keep their old key until they are
        cleaned again.
        """
        self.require_initialized()
        name = key_name(name)
        if seed:
            log.info(f"Replacing key {name!r}")
            self.keys.store(KeyMaterial.from_seed(name, seed))
        else:
            self.keys.load(name)
        self.register(name)
        return name

    def lock(self) -> typing.List[str]:
        """Stop decrypting and put the encrypted form back in the working tree."""
        self.require_initialized()
        managed = [entry.path for entry in self.git.managed_files()]
        self.git.unregister(FILTER_NAME)
        for path in managed:
            log.info(f"Locking {path}")
            self.git.restore_working_copy(path)
        return managed

    def encrypted_files(self) -> typing.List[typing.Tuple[str, envelope.Header]]:
        """Managed files whose working copy is currently an envelope."""
        found = []
        for entry in self.git.managed_files():
            try:
                data = (self.root / entry.path).read_bytes()
            except FileNotFoundError:
                log.warning(f"{entry.path} is missing from the working tree")
                continue
            header = envelope.decode(data)
            if header is not None:
                found.append((entry.path, header))
        return found

    def unlock(self, name: typing.Optional[str]) -> typing.List[str]:
        """
        Register the filters and decrypt every encrypted file.

        All files are checked against the key before any is decrypted.
        """
        self.require_initialized()
        name = key_name(name)
        key_hash = digest128(self.keys.load(name).key)

        encrypted = self.encrypted_files()
        for path, header in encrypted:
            if header.key_hash != key_hash:
                raise KeyMismatch(
                    f"Key {name!r} is not the key {path} was encrypted with")

        self.register(name)
        for path, _ in encrypted:
            log.info(f"Decrypting {path}")
            self.git.restore_working_copy(path)
        return [path for path, _ in encrypted]

    def refresh(self) -> None:
        """Discard every change and check the whole tree out again."""
        self.git.discard_all_and_reset()
