"""
Exception hierarchy for the autoscaler

Every error carries the id of the workload it concerns so failures can be
recorded with workload-scoped context.
"""

from typing import Optional


class AutoscalerError(Exception):
    """Base class for all autoscaler errors"""

    def __init__(self, message: str, workload_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.workload_id = workload_id

    def __str__(self) -> str:
        if self.workload_id:
            return f"[{self.workload_id}] {self.message}"
        return self.message


class InvalidConfiguration(AutoscalerError):
    """Workload configuration rejected at registration time"""


class MetricsUnavailable(AutoscalerError):
    """The metrics backend could not be reached; retried next cycle"""


class InsufficientData(AutoscalerError):
    """No usable samples remained after filtering; the cycle is skipped"""


class ExecutionError(AutoscalerError):
    """Applying a replica count failed; not retried"""

    transient = False

    def __init__(self, message: str, workload_id: Optional[str] = None,
                 status: Optional[int] = None):
        super().__init__(message, workload_id)
        self.status = status


class TransientExecutionError(ExecutionError):
    """Applying a replica count failed in a way worth retrying"""

    transient = True


class ExecutionConflict(TransientExecutionError):
    """The scale subresource changed underneath us (HTTP 409)"""


class WorkloadNotFound(ExecutionError):
    """The scale target no longer exists; the workload is disabled"""


class CycleTimeout(AutoscalerError):
    """The evaluation cycle passed its deadline and was aborted"""
