"""
Find managed files that were committed without being encrypted.

A file is managed when its 'filter' and 'diff' attributes are both
'gitenc'. The staged object of a managed file should always be an
envelope; if it isn't, the clean filter was not run when it was added.
"""

import logging
import typing

import attr

from . import envelope
from .filters import Pipeline
from .utils import GitencException
from .vcs import Entry, Git

log = logging.getLogger(__name__)


@attr.s
class DoctorReport:
    encrypted: typing.List[str] = attr.ib(factory=list)
    unencrypted: typing.List[str] = attr.ib(factory=list)
    unmanaged: typing.List[str] = attr.ib(factory=list)
    fixed: typing.List[str] = attr.ib(factory=list)
    unfixable: typing.List[str] = attr.ib(factory=list)

    @property
    def healthy(self) -> bool:
        return not self.unfixable and set(self.unencrypted) <= set(self.fixed)


@attr.s(frozen=True)
class Doctor:
    git: Git = attr.ib()
    pipeline: Pipeline = attr.ib()

    def is_encrypted(self, object_id: str) -> bool:
        return envelope.is_envelope(self.git.read_staged_object(object_id))

    def check(self, fix: bool = False) -> DoctorReport:
        """
        Sort tracked files into encrypted, unencrypted and unmanaged.

        With fix, every unencrypted file is also added to fixed or
        unfixable.
        """
        report = DoctorReport()

        for entry in self.git.enumerate_tracked():
            if not entry.managed:
                report.unmanaged.append(entry.path)
                continue
            if self.is_encrypted(entry.object_id):
                report.encrypted.append(entry.path)
                continue

            report.unencrypted.append(entry.path)
            if not fix:
                log.warning(
                    f"{entry.path} is not encrypted, run 'gitenc doctor --fix' "
                    f"to fix it or exclude it in .gitattributes")
            elif self.repair(entry):
                report.fixed.append(entry.path)
            else:
                report.unfixable.append(entry.path)

        return report

    def repair(self, entry: Entry) -> bool:
        """Stage the file again so the clean filter runs, then check the result once."""
        log.info(f"Repairing {entry.path}")
        try:
            self.git.stage(entry.path)
            object_id = self.git.staged_object_id(entry.path)
            if object_id is None:
                log.error(f"Failed to fix {entry.path}: it is no longer staged")
                return False
            plaintext = self.pipeline.verify(self.git.read_staged_object(object_id))
        except GitencException as error:
            log.error(f"Failed to fix {entry.path}: {error.message}")
            return False

        if plaintext is None:
            log.error(f"Failed to fix {entry.path}: staged object is still not encrypted")
            return False

        log.info(f"Fixed {entry.path}")
        return True
