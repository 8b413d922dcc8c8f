"""Error taxonomy for the report build.

Every error here is fatal: the build aborts and surfaces the condition.
"""


class PipelineError(Exception):
    """Base class for report-build failures."""


class ConfigError(PipelineError):
    """Configuration file is malformed."""


class DataUnavailable(PipelineError):
    """Dataset source is missing, unreachable or unreadable."""


class SchemaMismatch(PipelineError):
    """Dataset does not match the expected column schema."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = list(errors or [])


class DegenerateFold(PipelineError):
    """A split or resampling fold lacks one of the outcome classes."""


class FitFailure(PipelineError):
    """Imputation or forest engine failed to fit."""


class PipelineStateError(PipelineError):
    """A model-selection stage was invoked out of order."""
