from enum import IntEnum
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

# Nominal worker speed (instructions per time unit) used for scheduling estimates
REFERENCE_RATE = 1000.0

# Length thresholds separating priority classes
HIGH_PRIORITY_LIMIT = 100_000
MEDIUM_PRIORITY_LIMIT = 200_000

# Deadline slack over the estimated execution time
DEADLINE_FACTOR = 1.2


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class InvalidConfiguration(SchedulingError, ValueError):
    """The scheduling session was given an unusable set of workers or tasks."""


class InvalidWorkerReference(SchedulingError, KeyError):
    """A worker name does not refer to any worker in the session."""


class Priority(IntEnum):
    """Task priority. Lower values are placed first."""

    HIGH = 1
    MEDIUM = 2
    LOW = 3

    @classmethod
    def from_length(cls, length: float) -> "Priority":
        """Get the priority class of a task with the given length.

        Args:
            length (float): The task length in instructions.

        Returns:
            Priority: The priority class.
        """
        if length < HIGH_PRIORITY_LIMIT:
            return cls.HIGH
        if length < MEDIUM_PRIORITY_LIMIT:
            return cls.MEDIUM
        return cls.LOW


class Task(BaseModel):
    """A task (cloudlet) to be placed on a worker."""

    model_config = {"frozen": False}

    name: str = Field(..., frozen=True, description="The name of the task.")
    length: float = Field(
        ..., gt=0, frozen=True, description="The length of the task in instructions."
    )
    reference_rate: float = Field(
        default=REFERENCE_RATE,
        gt=0,
        frozen=True,
        description="The nominal worker speed used to estimate execution time.",
    )
    assigned_worker: Optional[str] = Field(
        default=None, description="The name of the worker currently holding the task."
    )

    @classmethod
    def create(
        cls, task: "Task | Tuple[str, float]", reference_rate: float = REFERENCE_RATE
    ) -> "Task":
        """Create a task from a Task or a (name, length) tuple.

        Args:
            task (Task | Tuple[str, float]): The task description.
            reference_rate (float, optional): Nominal worker speed. Defaults to REFERENCE_RATE.

        Returns:
            Task: The task.
        """
        if isinstance(task, Task):
            return task
        if isinstance(task, tuple) and len(task) == 2:
            return cls(name=str(task[0]), length=task[1], reference_rate=reference_rate)
        raise InvalidConfiguration(f"Invalid task: {task}")

    @property
    def priority(self) -> Priority:
        return Priority.from_length(self.length)

    @property
    def estimated_execution_time(self) -> float:
        return self.length / self.reference_rate

    @property
    def deadline(self) -> float:
        return self.estimated_execution_time * DEADLINE_FACTOR

    def __hash__(self) -> int:
        return hash(self.name)

    def __lt__(self, other: "Task") -> bool:
        return self.name < other.name

    def __str__(self) -> str:
        return (
            f"Task(name={self.name}, length={self.length:0.0f}, "
            f"priority={self.priority.name}, worker={self.assigned_worker})"
        )


class Worker(BaseModel):
    """A worker (VM) holding zero or more tasks."""

    model_config = {"frozen": False}

    name: str = Field(..., frozen=True, description="The name of the worker.")
    capacity: float = Field(
        ..., gt=0, frozen=True, description="The processing rate of the worker."
    )
    weight: Optional[float] = Field(
        default=None, description="The current scheduling weight of the worker."
    )
    tasks: List[Task] = Field(
        default_factory=list, description="The tasks currently held by the worker."
    )
    total_execution_time: float = Field(
        default=0.0, ge=0, description="Time spent executing, reported after execution."
    )
    idle_time: float = Field(
        default=0.0, ge=0, description="Time spent idle, reported after execution."
    )

    def model_post_init(self, __context: Any) -> None:
        if self.weight is None:
            self.weight = self.capacity

    @classmethod
    def create(cls, worker: "Worker | Tuple[str, float]") -> "Worker":
        """Create a worker from a Worker or a (name, capacity) tuple.

        Args:
            worker (Worker | Tuple[str, float]): The worker description.

        Returns:
            Worker: The worker.
        """
        if isinstance(worker, Worker):
            return worker
        if isinstance(worker, tuple) and len(worker) == 2:
            return cls(name=str(worker[0]), capacity=worker[1])
        raise InvalidConfiguration(f"Invalid worker: {worker}")

    @property
    def load(self) -> int:
        """The number of tasks currently held by the worker."""
        return len(self.tasks)

    @property
    def utilization(self) -> float:
        """Fraction of reported time spent executing (0.0 if nothing was reported)."""
        total = self.total_execution_time + self.idle_time
        if total <= 0:
            return 0.0
        return self.total_execution_time / total

    def add_task(self, task: Task) -> None:
        """Append a task to the worker's queue and take ownership of it.

        Args:
            task (Task): The task to add.
        """
        self.tasks.append(task)
        task.assigned_worker = self.name

    def pop_task(self, index: int) -> Task:
        """Remove the task at the given queue position.

        Args:
            index (int): The position of the task in the queue.

        Returns:
            Task: The removed task. Its owner is cleared.
        """
        task = self.tasks.pop(index)
        task.assigned_worker = None
        return task

    def __hash__(self) -> int:
        return hash(self.name)

    def __lt__(self, other: "Worker") -> bool:
        return self.name < other.name

    def __str__(self) -> str:
        return (
            f"Worker(name={self.name}, capacity={self.capacity:0.0f}, "
            f"load={self.load}, weight={self.weight:0.2f})"
        )


def total_load(workers: Iterable[Worker]) -> int:
    """Get the number of tasks held across a set of workers."""
    return sum(worker.load for worker in workers)


__all__ = [
    "DEADLINE_FACTOR",
    "HIGH_PRIORITY_LIMIT",
    "MEDIUM_PRIORITY_LIMIT",
    "REFERENCE_RATE",
    "InvalidConfiguration",
    "InvalidWorkerReference",
    "Priority",
    "SchedulingError",
    "Task",
    "Worker",
    "total_load",
]
