"""Version ledger over the repository version file.

The ledger reads the persisted version through the storage port and
computes the next version for a bump kind. It never writes: persisting the
bumped value is a separate commit made by the version-update automation on
its own branch.
"""

import logging
from typing import Optional

from src.release_pipeline.errors import MalformedVersionError
from src.release_pipeline.storage.port import RepositoryPort
from src.release_pipeline.version.models import BumpKind, VersionState


logger = logging.getLogger(__name__)


class VersionLedger:
    """Reads the current version and computes its successor.

    Attributes:
        repository: Storage port holding the version file.
    """

    def __init__(self, repository: RepositoryPort):
        self.repository = repository

    async def current(self, ref: Optional[str] = None) -> VersionState:
        """Read and parse the stored version.

        Args:
            ref: Branch or commit to read. Defaults to the mainline branch.

        Returns:
            VersionState: The stored version.

        Raises:
            MalformedVersionError: If the stored value does not parse.
        """
        raw_value = await self.repository.read_version(ref)

        try:
            state = VersionState.parse(raw_value)
        except MalformedVersionError:
            logger.error(
                "Stored version is malformed",
                extra={"raw_value": raw_value[:100], "ref": ref},
            )
            raise

        logger.info(
            "Read current version",
            extra={"version": str(state), "ref": ref},
        )
        return state

    @staticmethod
    def next(state: VersionState, bump_kind: BumpKind) -> VersionState:
        """Compute the version following ``state``.

        Minor bumps reset patch to 0; patch bumps leave major and minor
        unchanged.

        Example:
            >>> VersionLedger.next(VersionState.parse("1.2.3"), BumpKind.MINOR)
            VersionState(major=1, minor=3, patch=0)
        """
        return state.bump(bump_kind)
