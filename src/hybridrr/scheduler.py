import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from hybridrr import (
    InvalidConfiguration,
    InvalidWorkerReference,
    SchedulingError,
    Task,
    Worker,
    total_load,
)
from hybridrr.config import SchedulerConfig
from hybridrr.placement import Placer, RandomSource
from hybridrr.quantum import per_worker_quantum, system_quantum
from hybridrr.rebalancing import Migration, RebalanceResult, Rebalancer


class FairnessMetrics(BaseModel):
    """Fairness of a schedule. Fairness values are in (0, 1], higher is fairer."""

    load_fairness: float = Field(..., description="1 / (1 + std of worker loads).")
    utilization_fairness: float = Field(
        ..., description="1 / (1 + std of worker utilizations)."
    )
    system_quantum: float = Field(
        ..., description="Strict top-3 quantum over every task's estimated execution time."
    )


class HybridRoundRobinScheduler:
    """Hybrid round-robin scheduler for independent tasks on heterogeneous workers.

    A session is started with :meth:`initialize` and then runs static
    placement, batch rebalancing and any number of runtime monitoring cycles.
    :meth:`schedule` runs the whole session in one call.

    Example:
        scheduler = HybridRoundRobinScheduler(rng=0)
        assignment = scheduler.schedule(
            workers=[("vm0", 3000), ("vm1", 1000)],
            tasks=[("t0", 50000), ("t1", 150000), ("t2", 400000)],
        )
    """

    def __init__(
        self, config: Optional[SchedulerConfig] = None, rng: RandomSource = None
    ) -> None:
        """Initializes the scheduler.

        Args:
            config (Optional[SchedulerConfig]): The configuration. Defaults to SchedulerConfig().
            rng (RandomSource, optional): Random source or seed for worker selection. Defaults to None.
        """
        self.config = config or SchedulerConfig()
        self.placer = Placer(self.config, rng)
        self.rebalancer = Rebalancer(self.config)
        self.workers: List[Worker] = []
        self.tasks: List[Task] = []
        self.migrations: List[Migration] = []
        self._placed = False

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @property
    def initialized(self) -> bool:
        return bool(self.workers) and bool(self.tasks)

    @property
    def invalid_references(self) -> int:
        """Number of assignments rejected for an unknown worker."""
        return self.placer.invalid_references

    def initialize(
        self,
        workers: Iterable[Worker | Tuple[str, float]],
        tasks: Iterable[Task | Tuple[str, float]],
    ) -> None:
        """Start a scheduling session.

        The session holds copies of the given workers and tasks with no tasks
        assigned. The caller's records are left unchanged.

        Args:
            workers (Iterable[Worker | Tuple[str, float]]): Workers or (name, capacity) tuples.
            tasks (Iterable[Task | Tuple[str, float]]): Tasks or (name, length) tuples, in arrival order.

        Raises:
            InvalidConfiguration: If there are no workers, no tasks, or duplicate names.
        """
        self.workers, self.tasks, self.migrations = [], [], []
        self._placed = False

        # the session works on fresh records; ownership from earlier sessions is dropped
        worker_list = [
            Worker(name=worker.name, capacity=worker.capacity)
            for worker in map(Worker.create, workers)
        ]
        task_list = [
            task.model_copy(update={"assigned_worker": None})
            for task in map(Task.create, tasks)
        ]
        if not worker_list:
            raise InvalidConfiguration("No workers available for scheduling.")
        if not task_list:
            raise InvalidConfiguration("No tasks available for scheduling.")
        for kind, names in (
            ("worker", [worker.name for worker in worker_list]),
            ("task", [task.name for task in task_list]),
        ):
            duplicates = sorted(name for name, count in Counter(names).items() if count > 1)
            if duplicates:
                raise InvalidConfiguration(f"Duplicate {kind} names: {duplicates}.")

        self.workers, self.tasks = worker_list, task_list
        logging.info(
            "Initialized session with %d workers and %d tasks.",
            len(self.workers),
            len(self.tasks),
        )

    def run_static_placement(self) -> Dict[str, str]:
        """Place every task on a worker.

        Returns:
            Dict[str, str]: Map from task name to worker name for the tasks placed.
        """
        if not self.initialized:
            logging.debug("Session not initialized; skipping static placement.")
            return {}
        assignment = self.placer.place(self.workers, self.tasks)
        self._placed = True
        logging.info(
            "Static placement assigned %d of %d tasks.", len(assignment), len(self.tasks)
        )
        return assignment

    def _check_placed(self) -> None:
        if not self._placed:
            raise SchedulingError("Static placement must run before rebalancing.")

    def run_batch_rebalance(self) -> RebalanceResult:
        """Run batch rebalancing after placement.

        Returns:
            RebalanceResult: The passes performed and the migrations made.

        Raises:
            SchedulingError: If static placement has not run.
        """
        if not self.initialized:
            logging.debug("Session not initialized; skipping batch rebalancing.")
            return RebalanceResult()
        self._check_placed()
        result = self.rebalancer.batch_rebalance(self.workers)
        self.migrations.extend(result.migrations)
        return result

    def run_monitor_cycle(self) -> RebalanceResult:
        """Run one runtime monitoring cycle.

        Returns:
            RebalanceResult: The migrations made.

        Raises:
            SchedulingError: If static placement has not run.
        """
        if not self.initialized:
            logging.debug("Session not initialized; skipping monitor cycle.")
            return RebalanceResult()
        self._check_placed()
        result = self.rebalancer.monitor_once(self.workers)
        self.migrations.extend(result.migrations)
        return result

    def current_assignment(self) -> Dict[str, str]:
        """Get the current assignment.

        Returns:
            Dict[str, str]: Map from task name to worker name, in arrival order.
        """
        return {
            task.name: task.assigned_worker
            for task in self.tasks
            if task.assigned_worker is not None
        }

    def get_worker(self, name: str) -> Worker:
        """Get a worker by name.

        Raises:
            InvalidWorkerReference: If the worker does not exist.
        """
        for worker in self.workers:
            if worker.name == name:
                return worker
        raise InvalidWorkerReference(f"Worker {name} does not exist.")

    def report_execution(
        self, worker: str, total_execution_time: float, idle_time: float
    ) -> None:
        """Record execution feedback for a worker.

        Args:
            worker (str): The name of the worker.
            total_execution_time (float): Time the worker spent executing.
            idle_time (float): Time the worker spent idle.

        Raises:
            InvalidWorkerReference: If the worker does not exist.
            ValueError: If a time is negative.
        """
        if total_execution_time < 0 or idle_time < 0:
            raise ValueError(
                f"Execution feedback must be non-negative, got {total_execution_time} and {idle_time}."
            )
        record = self.get_worker(worker)
        record.total_execution_time = total_execution_time
        record.idle_time = idle_time

    def fairness_metrics(self) -> Optional[FairnessMetrics]:
        """Get the fairness metrics of the current assignment.

        Returns:
            Optional[FairnessMetrics]: The metrics, or None if the session is not initialized.
        """
        if not self.initialized:
            logging.debug("Session not initialized; no fairness metrics.")
            return None
        loads = np.array([worker.load for worker in self.workers], dtype=float)
        utilizations = np.array([worker.utilization for worker in self.workers])
        return FairnessMetrics(
            load_fairness=float(1.0 / (1.0 + np.std(loads))),
            utilization_fairness=float(1.0 / (1.0 + np.std(utilizations))),
            system_quantum=system_quantum(
                (task.estimated_execution_time for task in self.tasks),
                self.config.system_quantum_bounds,
                default=self.config.default_quantum,
            ),
        )

    def per_worker_quantum(self) -> Dict[str, float]:
        """Get the weighted quantum of every worker's queue."""
        return per_worker_quantum(self.workers, len(self.tasks), self.config)

    def summary(self) -> pd.DataFrame:
        """Get per-worker statistics.

        Returns:
            pd.DataFrame: One row per worker with name, capacity, load, weight,
                quantum and utilization.
        """
        quantums = self.per_worker_quantum()
        rows = [
            [
                worker.name,
                worker.capacity,
                worker.load,
                worker.weight,
                quantums[worker.name],
                worker.utilization,
            ]
            for worker in self.workers
        ]
        return pd.DataFrame(
            rows,
            columns=["worker", "capacity", "load", "weight", "quantum", "utilization"],
        )

    def schedule(
        self,
        workers: Iterable[Worker | Tuple[str, float]],
        tasks: Iterable[Task | Tuple[str, float]],
        monitor_cycles: int = 1,
    ) -> Dict[str, str]:
        """Run a full scheduling session.

        Args:
            workers (Iterable[Worker | Tuple[str, float]]): Workers or (name, capacity) tuples.
            tasks (Iterable[Task | Tuple[str, float]]): Tasks or (name, length) tuples.
            monitor_cycles (int, optional): Number of runtime monitoring cycles. Defaults to 1.

        Returns:
            Dict[str, str]: Map from task name to worker name.

        Raises:
            InvalidConfiguration: If there are no workers, no tasks, or duplicate names.
        """
        self.initialize(workers, tasks)
        self.run_static_placement()
        self.run_batch_rebalance()
        for _ in range(monitor_cycles):
            self.run_monitor_cycle()
        logging.debug(
            "Session finished with %d tasks held and %d migrations.",
            total_load(self.workers),
            len(self.migrations),
        )
        return self.current_assignment()
