"""
Tests for the per-island generation algorithm.
"""

import math
from multiprocessing.pool import ThreadPool

import pytest

from neuroarm.config import SCALE_STEPS, SMALLEST_SCALE
from neuroarm.errors import InvariantViolation
from neuroarm.generation import (
    ScoredGenome,
    evaluate_population,
    make_new_generation,
    mutation_sigma,
    rank,
    run_generation,
    scale_factor,
)
from neuroarm.genome import max_amplitude

from conftest import weight_sum_fitness


def test_scale_factor_steps():
    assert scale_factor(0.0) == 0.15
    assert scale_factor(0.49) > scale_factor(0.51)
    assert scale_factor(0.6) == 0.075
    assert scale_factor(0.8) == 0.05
    assert scale_factor(0.92) == 0.02
    assert scale_factor(0.99) == SMALLEST_SCALE

    breakpoints = [bound for bound, _ in SCALE_STEPS]
    assert breakpoints == [0.5, 0.75, 0.9, 0.95]
    samples = [0.0]
    for bound in breakpoints:
        samples.extend([bound - 1e-6, bound, bound + 1e-6])
    samples.append(1.0)
    factors = [scale_factor(x) for x in samples]
    assert all(a >= b for a, b in zip(factors, factors[1:]))


def test_mutation_sigma(population):
    best = ScoredGenome(0.8, population[0])
    assert mutation_sigma(best) == pytest.approx(max_amplitude(population[0]) * 0.05)


def test_evaluate_population_keeps_order(population):
    sequential = evaluate_population(population, weight_sum_fitness)
    with ThreadPool(3) as pool:
        parallel = evaluate_population(population, weight_sum_fitness, pool)
    assert [s.fitness for s in sequential] == [s.fitness for s in parallel]
    assert all(s.genome is g for s, g in zip(parallel, population))


def test_evaluate_rejects_bad_scores(population):
    with pytest.raises(InvariantViolation):
        evaluate_population(population, lambda g: float("nan"))
    with pytest.raises(InvariantViolation):
        evaluate_population(population, lambda g: math.inf)
    with pytest.raises(InvariantViolation):
        evaluate_population(population, lambda g: -1.0)
    with pytest.raises(InvariantViolation):
        evaluate_population([], weight_sum_fitness)


def test_rank_descending(population):
    scored = evaluate_population(population, weight_sum_fitness)
    ranked = rank(scored)
    fitnesses = [s.fitness for s in ranked]
    assert fitnesses == sorted(fitnesses, reverse=True)


def test_fill_preserves_size(tiny, population, rng, generator):
    scored = evaluate_population(population, weight_sum_fitness)
    for elite_fraction, randoms in ((0.3, 1), (0.2, 0), (0.5, 3), (1.0, 0)):
        nxt = make_new_generation(scored, tiny, elite_fraction, randoms, rng, generator)
        assert len(nxt) == len(scored)


def test_elites_survive_unchanged(tiny, population, rng, generator):
    """Population 10, 3 elites, 1 random, 6 offspring."""
    scored = evaluate_population(population, weight_sum_fitness)
    top3 = [s.genome for s in rank(scored)[:3]]

    nxt = make_new_generation(scored, tiny, 0.3, 1, rng, generator)

    assert len(nxt) == 10
    for elite in top3:
        assert any(g.allclose(elite) for g in nxt)
    # Elites are clones, not the same objects
    assert all(g is not elite for g in nxt for elite in top3)
    # Layout: randoms, offspring, elites
    assert all(a.allclose(b) for a, b in zip(nxt[-3:], top3))


def test_fill_failures(tiny, population, rng, generator):
    scored = evaluate_population(population, weight_sum_fitness)
    with pytest.raises(InvariantViolation):
        make_new_generation([], tiny, 0.3, 1, rng, generator)
    with pytest.raises(InvariantViolation):
        make_new_generation(scored, tiny, 0.1, 1, rng, generator)
    with pytest.raises(InvariantViolation):
        make_new_generation(scored, tiny, 0.5, 6, rng, generator)


def test_elitism_monotonic(tiny, population, rng, generator):
    first = run_generation(population, weight_sum_fitness, tiny, 0.25, 2, rng, generator)
    second = run_generation(first.population, weight_sum_fitness, tiny, 0.25, 2, rng, generator)
    third = run_generation(second.population, weight_sum_fitness, tiny, 0.25, 2, rng, generator)
    assert second.best.fitness >= first.best.fitness
    assert third.best.fitness >= second.best.fitness
    assert len(third.population) == len(population)


def test_run_generation_reports_stats(tiny, population, rng, generator):
    result = run_generation(population, weight_sum_fitness, tiny, 0.3, 1, rng, generator)
    best_input = max(weight_sum_fitness(g) for g in population)
    assert result.best.fitness == pytest.approx(best_input)
    assert result.sigma == pytest.approx(mutation_sigma(result.best))
    assert 0.0 <= result.median_fitness <= result.best.fitness
    assert set(result.to_dict()) == {'best_fitness', 'sigma', 'mean_fitness', 'median_fitness', 'elapsed'}
