import pathlib
import typing

import click
import git


def find_git_directory() -> typing.Optional[pathlib.Path]:
    try:
        repo = git.Repo(search_parent_directories=True)
    except git.exc.InvalidGitRepositoryError:
        return None
    return pathlib.Path(repo.working_dir)


def find_metadata_directory(root: pathlib.Path) -> pathlib.Path:
    """Return the git metadata directory (usually '.git') for a working tree."""
    try:
        repo = git.Repo(root)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError):
        raise NotInitialized(f"{root} is not a git repository")
    return pathlib.Path(repo.git_dir)


class GitencException(click.ClickException):
    pass


class NotInitialized(GitencException):
    pass


class AlreadyInitialized(GitencException):
    pass


class KeyUnavailable(GitencException):
    pass


class GitError(GitencException):
    pass


class CryptoFailure(GitencException):
    pass


class VerificationFailure(GitencException):
    """An envelope was recognised but could not be turned back into plaintext."""


class KeyMismatch(VerificationFailure):
    pass


class AuthenticationFailure(VerificationFailure):
    pass


class DecompressionFailure(VerificationFailure):
    pass


class ContentHashMismatch(VerificationFailure):
    pass


class RepairFailed(GitencException):
    pass
