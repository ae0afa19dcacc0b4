"""
Failures that end a refresh run.

Data-quality findings are never raised; they are counted in the run report.
"""


class RefreshError(Exception):
    """Base class for errors that abort a refresh without committing anything."""


class StateReadError(RefreshError):
    """Persisted aggregate state or its watermark could not be read."""


class StateWriteError(RefreshError):
    """Merging the new rows into persisted state failed; previous state is kept."""


class RefreshCancelled(RefreshError):
    """The run was cancelled or exceeded its timeout before committing."""
