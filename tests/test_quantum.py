import pytest
from pydantic import ValidationError

from hybridrr import Task, Worker
from hybridrr.config import DEFAULT_QUANTUM_TIERS, QuantumBounds, SchedulerConfig
from hybridrr.quantum import (
    per_worker_quantum,
    quantum_bounds,
    system_quantum,
    weighted_quantum,
)

WIDE = QuantumBounds(lower=0, upper=10_000)


@pytest.mark.parametrize(
    "burst_times, expected",
    [
        ([500, 300, 100], 300),
        ([100, 500, 300], 300),
        ([500, 300, 100, 90, 80], 300),
        ([250], 250),
        ([100, 120], 220),
        ([400, 300], 500),  # clamped from 700
        ([10], 50),  # clamped from 10
        ([], 100),
    ],
)
def test_system_quantum(burst_times, expected):
    assert system_quantum(burst_times) == pytest.approx(expected)


def test_system_quantum_custom_bounds():
    assert system_quantum([400, 300], QuantumBounds(lower=0, upper=1000)) == pytest.approx(700)


@pytest.mark.parametrize(
    "burst_times, expected",
    [
        ([500, 300, 100], 0.5 * 500 + 0.3 * 300 + 0.2 * 100),
        ([100, 300, 500, 10], 0.5 * 500 + 0.3 * 300 + 0.2 * 100),
        ([200, 100], 0.7 * 200 + 0.3 * 100),
        ([250], 250),
        ([], 100),
    ],
)
def test_weighted_quantum(burst_times, expected):
    assert weighted_quantum(burst_times, WIDE) == pytest.approx(expected)


def test_weighted_quantum_clamps():
    bounds = QuantumBounds(lower=50, upper=300)
    assert weighted_quantum([1000, 1000, 1000], bounds) == pytest.approx(300)
    assert weighted_quantum([1, 1, 1], bounds) == pytest.approx(50)
    assert weighted_quantum([], bounds, default=10) == pytest.approx(50)


def test_quantum_rejects_negative_burst_times():
    with pytest.raises(ValueError):
        system_quantum([100, -1])
    with pytest.raises(ValueError):
        weighted_quantum([-1], WIDE)


def test_bounds_must_be_ordered():
    with pytest.raises(ValidationError):
        QuantumBounds(lower=10, upper=5)


@pytest.mark.parametrize(
    "population, lower, upper",
    [
        (0, 50, 300),
        (100, 50, 300),
        (101, 75, 400),
        (1000, 75, 400),
        (1001, 100, 500),
        (10**6, 100, 500),
    ],
)
def test_quantum_bounds(population: int, lower: float, upper: float):
    bounds = quantum_bounds(population, DEFAULT_QUANTUM_TIERS)
    assert (bounds.lower, bounds.upper) == (lower, upper)


def test_per_worker_quantum():
    busy = Worker(name="vm0", capacity=1000)
    for i, length in enumerate([300_000, 100_000, 200_000]):
        busy.add_task(Task(name=f"t{i}", length=length))
    idle = Worker(name="vm1", capacity=1000)

    quantums = per_worker_quantum([busy, idle], population=3)

    assert quantums["vm0"] == pytest.approx(0.5 * 300 + 0.3 * 200 + 0.2 * 100)
    assert quantums["vm1"] == pytest.approx(100)


def test_per_worker_quantum_uses_population_bounds():
    worker = Worker(name="vm0", capacity=1000)
    worker.add_task(Task(name="t0", length=1_000_000))
    config = SchedulerConfig()
    assert per_worker_quantum([worker], 50, config)["vm0"] == pytest.approx(300)
    assert per_worker_quantum([worker], 500, config)["vm0"] == pytest.approx(400)
    assert per_worker_quantum([worker], 5000, config)["vm0"] == pytest.approx(500)
