"""Failure taxonomy for a batch run.

Only ``SourceNotFound`` and ``RunCancelled`` end a run on purpose. The other
kinds are absorbed beneath the controller and show up as notes on the per-symbol
diagnostics instead of propagating.
"""


class BatchError(Exception):
    """Base class for every failure a batch run can classify."""

    kind = "batch_error"


class SourceNotFound(BatchError):
    kind = "source_not_found"


class SelectionFailed(BatchError):
    kind = "selection_failed"


class ConfigurationPartial(BatchError):
    kind = "configuration_partial"


class RefreshTimeout(BatchError):
    kind = "refresh_timeout"


class DeliveryFailed(BatchError):
    kind = "delivery_failed"


class RunCancelled(BatchError):
    kind = "run_cancelled"
