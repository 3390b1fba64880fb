from typing import List, Sequence

import numpy as np
import pytest

from hybridrr import InvalidConfiguration, Priority, Task, Worker, total_load
from hybridrr.config import SchedulerConfig
from hybridrr.placement import Placer
from hybridrr.utils.workloads import get_random_tasks, get_uniform_tasks, get_workers
from hybridrr.weights import worker_weight


class FixedRandom:
    """Random source that always returns the same value."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


class GhostPlacer(Placer):
    """Placer whose selection resolves to a worker that does not exist."""

    def select_worker(self, workers: Sequence[Worker], task: Task) -> str:
        return "ghost"


def flatten(batches: List[List[Task]]) -> List[Task]:
    return [task for batch in batches for task in batch]


def test_placement_order_is_priority_stable():
    lengths = [250_000, 50_000, 150_000, 60_000, 300_000]
    tasks = [Task(name=f"t{i}", length=length) for i, length in enumerate(lengths)]
    order = flatten(Placer(rng=0).placement_order(tasks))
    # batches of one: priority order, arrival order among equals
    assert [task.name for task in order] == ["t1", "t3", "t2", "t0", "t4"]


@pytest.mark.parametrize("seed", range(5))
def test_placement_order_respects_priority(seed: int):
    tasks = get_random_tasks(57, rng=np.random.default_rng(seed))
    order = flatten(Placer(rng=seed).placement_order(tasks))
    assert sorted(task.name for task in order) == sorted(task.name for task in tasks)
    priorities = [task.priority for task in order]
    assert priorities == sorted(priorities)


def test_placement_order_batches():
    tasks = get_uniform_tasks(25, length=50_000)
    batches = Placer(rng=0).placement_order(tasks)
    assert [len(batch) for batch in batches] == [2] * 12 + [1]


def test_placement_order_batch_divisor():
    tasks = get_uniform_tasks(25, length=50_000)
    batches = Placer(SchedulerConfig(batch_divisor=5), rng=0).placement_order(tasks)
    assert [len(batch) for batch in batches] == [5] * 5


def test_placement_order_longest_first_within_batch():
    tasks = [Task(name=f"t{i}", length=1000 * (i + 1)) for i in range(20)]
    batches = Placer(rng=0).placement_order(tasks)
    assert [[task.name for task in batch] for batch in batches[:2]] == [
        ["t1", "t0"],
        ["t3", "t2"],
    ]
    for batch in batches:
        lengths = [task.length for task in batch]
        assert lengths == sorted(lengths, reverse=True)


def test_eligible_workers():
    workers = get_workers(capacities=[100, 200, 300])
    task = Task(name="t", length=150_000)  # estimated time 150
    assert [worker.name for worker in Placer(rng=0).eligible_workers(workers, task)] == [
        "vm1",
        "vm2",
    ]


def test_eligible_workers_forced_placement():
    workers = get_workers(capacities=[100, 300, 200])
    task = Task(name="t", length=5_000_000)  # estimated time 5000
    eligible = Placer(rng=0).eligible_workers(workers, task)
    assert [worker.name for worker in eligible] == ["vm1"]


def test_select_worker_cumulative_weight():
    workers = get_workers(capacities=[1000, 1000])
    task = Task(name="t", length=50_000)
    assert Placer(rng=FixedRandom(0.0)).select_worker(workers, task) == "vm0"
    assert Placer(rng=FixedRandom(0.49)).select_worker(workers, task) == "vm0"
    assert Placer(rng=FixedRandom(0.51)).select_worker(workers, task) == "vm1"
    assert Placer(rng=FixedRandom(0.999)).select_worker(workers, task) == "vm1"


def test_select_worker_refreshes_weights():
    workers = get_workers(capacities=[1000, 1000])
    workers[0].weight = 1.0
    Placer(rng=FixedRandom(0.0)).select_worker(workers, Task(name="t", length=50_000))
    assert workers[0].weight == pytest.approx(1200.0)


def test_select_worker_round_robin_fallback():
    workers = get_workers(capacities=[1000, 1000, 50])
    task = Task(name="t", length=100_000)  # vm2 is not eligible
    placer = Placer(rng=FixedRandom(2.0))  # draws beyond the total weight
    picks = [placer.select_worker(workers, task) for _ in range(3)]
    assert picks == ["vm0", "vm1", "vm0"]
    assert placer.cursor == 3


@pytest.mark.parametrize("seed", range(5))
@pytest.mark.parametrize("num_tasks, capacities", [(1, [1000]), (9, [3000, 1000, 1000]), (130, [500, 1000, 2000, 4000])])
def test_place_assigns_every_task(seed: int, num_tasks: int, capacities: List[float]):
    workers = get_workers(capacities=capacities)
    tasks = get_random_tasks(num_tasks, rng=np.random.default_rng(seed))
    placer = Placer(rng=seed)

    assignment = placer.place(workers, tasks)

    assert set(assignment) == {task.name for task in tasks}
    assert total_load(workers) == len(tasks)
    for worker in workers:
        for task in worker.tasks:
            assert task.assigned_worker == worker.name
            assert assignment[task.name] == worker.name
        assert worker.weight == pytest.approx(worker_weight(worker))
    held = [task.name for worker in workers for task in worker.tasks]
    assert len(held) == len(set(held))
    assert placer.invalid_references == 0


def test_place_forced_placement_on_strongest_worker():
    workers = get_workers(capacities=[10, 20, 30])
    tasks = [Task(name=f"t{i}", length=500_000) for i in range(4)]
    Placer(rng=0).place(workers, tasks)
    assert [worker.load for worker in workers] == [0, 0, 4]


def test_place_is_reproducible():
    def run(seed: int):
        workers = get_workers(capacities=[3000, 1000, 1000, 500])
        tasks = get_random_tasks(40, rng=np.random.default_rng(0))
        return Placer(rng=seed).place(workers, tasks)

    assert run(3) == run(3)


def test_place_skips_assigned_tasks():
    workers = get_workers(capacities=[1000, 1000])
    tasks = get_uniform_tasks(3, length=50_000)
    workers[1].add_task(tasks[0])
    assignment = Placer(rng=0).place(workers, tasks)
    assert set(assignment) == {"t1", "t2"}
    assert total_load(workers) == 3
    assert tasks[0].assigned_worker == "vm1"


def test_place_ignores_stale_owner():
    workers = get_workers(capacities=[1000, 1000])
    tasks = get_uniform_tasks(2, length=50_000)
    tasks[0].assigned_worker = "ghost"
    assignment = Placer(rng=0).place(workers, tasks)
    assert set(assignment) == {"t0", "t1"}
    assert total_load(workers) == 2
    assert tasks[0].assigned_worker in {"vm0", "vm1"}


def test_place_invalid_worker_reference():
    workers = get_workers(capacities=[1000, 1000])
    tasks = get_uniform_tasks(5, length=50_000)
    placer = GhostPlacer(rng=0)

    assignment = placer.place(workers, tasks)

    assert assignment == {}
    assert placer.invalid_references == 5
    assert total_load(workers) == 0
    assert all(task.assigned_worker is None for task in tasks)


def test_place_without_workers():
    with pytest.raises(InvalidConfiguration):
        Placer(rng=0).place([], get_uniform_tasks(2))


def test_place_prefers_stronger_workers():
    counts = np.zeros(3)
    for seed in range(50):
        workers = get_workers(capacities=[3000, 1000, 1000])
        Placer(rng=seed).place(workers, get_uniform_tasks(9, length=150_000))
        counts += [worker.load for worker in workers]
    assert counts[0] > 2 * counts[1]
    assert counts[0] > 2 * counts[2]


def test_place_high_priority_first():
    workers = get_workers(capacities=[1000])
    tasks = [
        Task(name="low", length=300_000),
        Task(name="high", length=10_000),
        Task(name="medium", length=150_000),
    ]
    Placer(rng=0).place(workers, tasks)
    assert [task.name for task in workers[0].tasks] == ["high", "medium", "low"]
    assert [task.priority for task in workers[0].tasks] == [
        Priority.HIGH,
        Priority.MEDIUM,
        Priority.LOW,
    ]
