"""Error taxonomy for the release pipeline.

Every error raised here halts the current pipeline run and is reported to
the operator. Nothing is compensated: effects of stages that already
completed (a deployment, a created tag) are left in place and must be
reconciled manually.
"""

from typing import Optional


class PipelineError(Exception):
    """Base class for all release pipeline errors."""


class GateEvaluationError(PipelineError):
    """Raised when a stage gate cannot be evaluated.

    Gates are total functions over the trigger event, so this is never
    raised by the built-in gates. A custom gate that raises fails its own
    stage and the stages after it are skipped.
    """


class StageGraphError(PipelineError):
    """Raised when stage definitions do not form a valid ordered graph."""


class StagePlanError(PipelineError):
    """Raised when a stage plan file is missing, unreadable or invalid."""


class StageExecutionError(PipelineError):
    """Raised when delegated stage work fails.

    Attributes:
        stage: Name of the stage whose work failed.
        step: Name of the failing step, if the work is step based.
        exit_code: Exit code of the failing command, if any.
    """

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        step: Optional[str] = None,
        exit_code: Optional[int] = None,
    ):
        self.message = message
        self.stage = stage
        self.step = step
        self.exit_code = exit_code
        super().__init__(message)


class MalformedVersionError(PipelineError):
    """Raised when the stored version is not ``major.minor.patch``.

    Attributes:
        raw_value: The value read from the version file.
    """

    def __init__(self, raw_value: str):
        self.raw_value = raw_value
        super().__init__(
            f"Malformed version {raw_value!r}: expected three non-negative "
            "integers separated by dots"
        )


class TagAlreadyExistsError(PipelineError):
    """Raised when the release tag name is already taken."""

    def __init__(self, tag_name: str):
        self.tag_name = tag_name
        super().__init__(f"Tag already exists: {tag_name}")


class BranchAlreadyExistsError(PipelineError):
    """Raised when the version-update branch name is already taken."""

    def __init__(self, branch_name: str):
        self.branch_name = branch_name
        super().__init__(f"Branch already exists: {branch_name}")


class ReleasePublicationError(PipelineError):
    """Raised when the release record fails after its tag was created.

    The tag is not removed. Operators reconcile the missing release by
    hand.

    Attributes:
        tag_name: The tag that was created and remains in place.
    """

    def __init__(self, tag_name: str, reason: str):
        self.tag_name = tag_name
        self.reason = reason
        super().__init__(
            f"Release for tag {tag_name} failed after the tag was created: {reason}"
        )


class WorkspaceProvisionError(PipelineError):
    """Raised when a checkout of the event commit cannot be prepared.

    Attributes:
        commit_sha: The commit that was being checked out.
    """

    def __init__(self, commit_sha: str, reason: str):
        self.commit_sha = commit_sha
        self.reason = reason
        super().__init__(f"Failed to check out {commit_sha}: {reason}")
