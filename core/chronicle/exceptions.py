"""
Chronicle Custom Exceptions
"""


class ChronicleError(Exception):
    """Base exception for Chronicle"""
    pass


class AgentError(ChronicleError):
    """Error in agent execution"""
    def __init__(self, agent_name: str, message: str, recoverable: bool = True):
        self.agent_name = agent_name
        self.recoverable = recoverable
        super().__init__(f"[{agent_name}] {message}")


class StepDecodeError(ChronicleError):
    """Persisted step tag could not be decoded"""
    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unknown step: {value!r}")


class JobNotFoundError(ChronicleError):
    """No job with this id"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class JobCancelledError(ChronicleError):
    """Job was cancelled while a tick was running"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} was cancelled")


class LeaseLostError(ChronicleError):
    """Tick no longer owns the job row"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Lost tick lease on job {job_id}")


class RetryBudgetExceededError(ChronicleError):
    """Editor kept rejecting the same scene"""
    def __init__(self, chapter: int, scene: int, attempts: int):
        self.chapter = chapter
        self.scene = scene
        self.attempts = attempts
        super().__init__(
            f"Chapter {chapter + 1}, section {scene + 1} was rejected "
            f"{attempts} times by the editor; giving up on this book"
        )


class ValidationRejectedError(ChronicleError):
    """Structural validation failed with no rollback budget left"""
    def __init__(self, boundary: str, issues: list, rounds: int):
        self.boundary = boundary
        self.issues = issues
        self.rounds = rounds
        detail = "; ".join(issues[:3]) or "no details"
        super().__init__(
            f"{boundary} failed validation after {rounds} regeneration round(s): {detail}"
        )


class DailyLimitExceededError(ChronicleError):
    """Owner already started the maximum number of jobs today"""
    def __init__(self, owner_id: str, limit: int):
        self.owner_id = owner_id
        self.limit = limit
        super().__init__(f"Daily limit of {limit} books reached")
