"""Exception hierarchy for the stage pipeline."""


class PipelineError(Exception):
    """Base error for the stage pipeline."""
    pass


class InvalidStageNumberError(PipelineError):
    """Stage number is not an integer in [1, 9]."""
    pass


class EmptyQueryError(PipelineError):
    """Stage 1 was called without a usable query."""
    pass


class MissingCredentialsError(PipelineError):
    """No model provider credential was supplied."""
    pass


class StagePrerequisiteNotMetError(PipelineError):
    """Strict ordering is enabled and the previous stage has not completed."""
    pass


class MalformedResponseError(PipelineError):
    """Model output could not be parsed as the expected structure."""
    pass


class ModelCallError(PipelineError):
    """The model call service failed (transport, status, quota)."""
    pass


class SchedulerError(PipelineError):
    """Base error raised by the task scheduler."""
    pass


class SingleToolRuleViolation(SchedulerError):
    """Task capabilities break the THINKING plus at most one rule."""
    pass


class TaskNotFoundError(SchedulerError):
    """Task id is unknown or its result has been purged."""
    pass


class TaskFailedError(SchedulerError):
    """Task finished with an error."""
    pass


class SchedulerTimeoutError(SchedulerError):
    """Task result was not available before the polling timeout."""
    pass
