from typing import Optional


class JobError(RuntimeError):
    """Fatal job error. The driver marks the job failed and never retries it."""


class JobValidationError(JobError):
    pass


class SynthesisError(JobError):
    pass


class NormalizationError(JobError):
    pass


class SanitationBatchError(JobError):
    pass


class RenderSubmissionError(JobError):
    pass


class RenderFailure(JobError):
    def __init__(self, status: Optional[str]) -> None:
        self.status = status or "render failed"
        super().__init__(self.status)


class JobNotFound(LookupError):
    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class LeaseContention(RuntimeError):
    """Another invocation holds the lease; callers retry later."""
