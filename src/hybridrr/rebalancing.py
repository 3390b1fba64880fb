import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from pydantic import BaseModel, Field

from hybridrr import Worker, total_load
from hybridrr.config import SchedulerConfig, select_tier


class Migration(BaseModel):
    """A task moved from one worker to another."""

    model_config = {"frozen": True}

    task: str = Field(..., description="The name of the migrated task.")
    source: str = Field(..., description="The worker the task was taken from.")
    target: str = Field(..., description="The worker the task was moved to.")

    def __str__(self) -> str:
        return f"Migration(task={self.task}, {self.source} -> {self.target})"


class RebalanceResult(BaseModel):
    """Outcome of a rebalancing call."""

    passes: int = Field(default=0, description="The number of passes performed.")
    migrations: List[Migration] = Field(
        default_factory=list, description="The migrations performed, in order."
    )

    @property
    def changed(self) -> bool:
        return bool(self.migrations)


def longest_task_index(worker: Worker) -> Optional[int]:
    """Position of the first task with the longest estimated execution time."""
    if not worker.tasks:
        return None
    return max(
        range(worker.load), key=lambda i: worker.tasks[i].estimated_execution_time
    )


def shortest_task_index(worker: Worker) -> Optional[int]:
    """Position of the first task with the shortest estimated execution time."""
    if not worker.tasks:
        return None
    return min(
        range(worker.load), key=lambda i: worker.tasks[i].estimated_execution_time
    )


def migrate(source: Worker, target: Worker, index: int) -> Migration:
    """Move the task at ``index`` of the source queue to the end of the target queue.

    Args:
        source (Worker): The worker giving up the task.
        target (Worker): The worker receiving the task.
        index (int): Position of the task in the source queue.

    Returns:
        Migration: The migration.
    """
    task = source.pop_task(index)
    target.add_task(task)
    return Migration(task=task.name, source=source.name, target=target.name)


def average_load(workers: Sequence[Worker]) -> float:
    if not workers:
        return 0.0
    return float(np.mean([worker.load for worker in workers]))


def partition(
    workers: Sequence[Worker], avg_load: float, threshold: float
) -> Tuple[List[Worker], List[Worker]]:
    """Split workers into overloaded and underloaded ones.

    Args:
        workers (Sequence[Worker]): The workers.
        avg_load (float): The average load.
        threshold (float): Distance from the average that counts as imbalance.

    Returns:
        Tuple[List[Worker], List[Worker]]: The overloaded and underloaded workers.
    """
    overloaded, underloaded = [], []
    for worker in workers:
        if worker.load > avg_load + threshold:
            overloaded.append(worker)
        elif worker.load < avg_load - threshold:
            underloaded.append(worker)
    return overloaded, underloaded


class Rebalancer:
    """Migrates tasks from overloaded to underloaded workers.

    ``batch_rebalance`` runs a few passes after placement and moves the
    longest tasks out of hot workers. ``monitor_once`` is a cheap single pass
    meant to be called periodically and moves the shortest tasks, at most a
    couple per call.
    """

    def __init__(self, config: Optional[SchedulerConfig] = None) -> None:
        self.config = config or SchedulerConfig()

    def threshold(self, avg_load: float, population: int) -> float:
        """Get the batch rebalancing threshold.

        Args:
            avg_load (float): The average load.
            population (int): The number of tasks held by the workers.

        Returns:
            float: The threshold.
        """
        tier = select_tier(self.config.threshold_tiers, population)
        return max(tier.minimum, avg_load * tier.relative)

    def batch_rebalance(self, workers: Sequence[Worker]) -> RebalanceResult:
        """Rebalance workers with up to ``max_rebalance_passes`` passes.

        Stops early after a pass without migrations.

        Args:
            workers (Sequence[Worker]): The workers.

        Returns:
            RebalanceResult: The passes performed and the migrations made.
        """
        result = RebalanceResult()
        population = total_load(workers)
        while result.passes < self.config.max_rebalance_passes:
            result.passes += 1
            migrations = self._batch_pass(workers, population)
            result.migrations.extend(migrations)
            if not migrations:
                break
        logging.info(
            "Batch rebalancing made %d migrations in %d passes.",
            len(result.migrations),
            result.passes,
        )
        return result

    def _batch_pass(self, workers: Sequence[Worker], population: int) -> List[Migration]:
        avg_load = average_load(workers)
        threshold = self.threshold(avg_load, population)
        overloaded, underloaded = partition(workers, avg_load, threshold)
        logging.debug(
            "Batch pass: avg load %0.2f, threshold %0.2f, %d overloaded, %d underloaded.",
            avg_load,
            threshold,
            len(overloaded),
            len(underloaded),
        )

        migrations: List[Migration] = []
        for source in overloaded:
            for target in underloaded:
                # move until the source reaches the average or the target does
                while source.load > avg_load and target.load < avg_load:
                    index = longest_task_index(source)
                    if index is None:
                        break
                    migration = migrate(source, target, index)
                    logging.debug("%s", migration)
                    migrations.append(migration)
        return migrations

    def monitor_once(self, workers: Sequence[Worker]) -> RebalanceResult:
        """Run one runtime monitoring pass.

        At most ``monitor_max_migrations`` tasks are moved and at most one per
        overloaded worker.

        Args:
            workers (Sequence[Worker]): The workers.

        Returns:
            RebalanceResult: The migrations made.
        """
        avg_load = average_load(workers)
        threshold = avg_load * self.config.monitor_threshold
        overloaded, underloaded = partition(workers, avg_load, threshold)

        result = RebalanceResult(passes=1)
        max_migrations = self.config.monitor_max_migrations
        for source in overloaded:
            if len(result.migrations) >= max_migrations:
                break
            for target in underloaded:
                index = shortest_task_index(source)
                if index is None:
                    break
                migration = migrate(source, target, index)
                logging.debug("Runtime %s", migration)
                result.migrations.append(migration)
                break

        if result.migrations:
            logging.info("Runtime monitoring migrated %d tasks.", len(result.migrations))
        else:
            logging.debug("Runtime monitoring found the load balanced.")
        return result
