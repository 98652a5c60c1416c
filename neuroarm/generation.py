"""
Generation algorithm for a single island.

One tick:
1. Evaluate every genome (in parallel through a worker pool)
2. Rank by fitness, descending
3. Keep the top elite_fraction unchanged
4. Derive sigma from the best fitness and the best genome's max amplitude
5. Add a few fresh random genomes
6. Fill the remaining slots with offspring of two distinct elites
"""

import math
import random
import time
from dataclasses import dataclass
from multiprocessing.pool import Pool, ThreadPool
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np
import torch
from loguru import logger

from .config import SCALE_STEPS, SMALLEST_SCALE
from .errors import InvariantViolation
from .genome import Genome, Topology, max_amplitude
from .operators import Operator, make_distinct, make_offspring, operator_table

FitnessFunction = Callable[[Genome], float]


@dataclass
class ScoredGenome:
    """A genome paired with its fitness (higher is better)."""
    fitness: float
    genome: Genome


@dataclass
class GenerationResult:
    """Output of one generation tick."""
    population: List[Genome]
    best: ScoredGenome
    sigma: float
    mean_fitness: float
    median_fitness: float
    elapsed: float

    def to_dict(self) -> dict:
        return {
            'best_fitness': self.best.fitness,
            'sigma': self.sigma,
            'mean_fitness': self.mean_fitness,
            'median_fitness': self.median_fitness,
            'elapsed': self.elapsed,
        }


def make_pool(workers: int, use_processes: bool = False):
    """
    Bounded worker pool for fitness evaluation.

    Threads by default; processes need a picklable fitness function.
    """
    if use_processes:
        return Pool(workers)
    return ThreadPool(workers)


def _checked_fitness(value, slot: int) -> float:
    fitness = float(value)
    if not math.isfinite(fitness):
        raise InvariantViolation(f"fitness function returned non-finite score {fitness} for slot {slot}")
    if fitness < 0:
        raise InvariantViolation(f"fitness function returned negative score {fitness} for slot {slot}")
    return fitness


def evaluate_population(
    population: Sequence[Genome],
    fitness_fn: FitnessFunction,
    pool=None,
) -> List[ScoredGenome]:
    """
    Score every genome.

    Args:
        population: Genomes to evaluate (not modified)
        fitness_fn: Callable returning a finite, non-negative score
        pool: Optional multiprocessing pool; sequential if None

    Returns:
        Scored genomes in population order
    """
    if not population:
        raise InvariantViolation("cannot evaluate an empty population")

    if pool is None:
        scores = [fitness_fn(genome) for genome in population]
    else:
        scores = pool.map(fitness_fn, population)

    return [
        ScoredGenome(_checked_fitness(score, slot), genome)
        for slot, (score, genome) in enumerate(zip(scores, population))
    ]


def rank(scored: Sequence[ScoredGenome]) -> List[ScoredGenome]:
    """Sort by fitness, best first."""
    return sorted(scored, key=lambda s: s.fitness, reverse=True)


def scale_factor(best_fitness: float) -> float:
    """Step function: coarse mutation while fitness is low, fine once it is high."""
    for bound, scale in SCALE_STEPS:
        if best_fitness < bound:
            return scale
    return SMALLEST_SCALE


def mutation_sigma(best: ScoredGenome) -> float:
    """sigma = max amplitude of the best genome * scale_factor(best fitness)."""
    return max_amplitude(best.genome) * scale_factor(best.fitness)


def make_new_generation(
    scored: Sequence[ScoredGenome],
    topology: Topology,
    elite_fraction: float,
    random_count: int,
    rng: random.Random,
    generator: Optional[torch.Generator] = None,
    weights: Optional[Dict[str, int]] = None,
    operators: Optional[Dict[str, Operator]] = None,
    sigma: Optional[float] = None,
) -> List[Genome]:
    """
    Build the next population from scored genomes.

    Args:
        scored: Scored genomes of the current population (any order)
        topology: Topology used for fresh random genomes
        elite_fraction: Fraction of the population kept unchanged
        random_count: Number of fresh random genomes
        rng: Source of parent and operator choices
        generator: Torch generator for masks, noise and random genomes
        weights: Operator weights (default OPERATOR_WEIGHTS)
        operators: Operator table (default operator_table())
        sigma: Mutation std; derived from the best genome if None

    Returns:
        randoms + offspring + elites, same length as `scored`
    """
    if not scored:
        raise InvariantViolation("cannot build a generation from an empty population")

    ranked = rank(scored)
    size = len(ranked)
    elite_count = int(elite_fraction * size)
    if elite_count < 2:
        raise InvariantViolation(
            f"elite_fraction={elite_fraction} of {size} leaves {elite_count} elites, need at least 2"
        )
    if elite_count + random_count > size:
        raise InvariantViolation(
            f"{elite_count} elites + {random_count} randoms exceed population size {size}"
        )

    if sigma is None:
        sigma = mutation_sigma(ranked[0])
    operators = operators or operator_table()

    elites = [s.genome.clone() for s in ranked[:elite_count]]
    new_generation = [Genome.random(topology, generator) for _ in range(random_count)]

    for _ in range(size - elite_count - random_count):
        mother, father = make_distinct(elite_count, rng)
        new_generation.append(
            make_offspring(elites[mother], elites[father], sigma, rng, generator, weights, operators)
        )

    new_generation.extend(elites)
    return new_generation


def run_generation(
    population: Sequence[Genome],
    fitness_fn: FitnessFunction,
    topology: Topology,
    elite_fraction: float,
    random_count: int,
    rng: random.Random,
    generator: Optional[torch.Generator] = None,
    pool=None,
    weights: Optional[Dict[str, int]] = None,
    operators: Optional[Dict[str, Operator]] = None,
) -> GenerationResult:
    """Evaluate a population and produce its successor."""
    start_time = time.time()

    scored = rank(evaluate_population(population, fitness_fn, pool))
    best = scored[0]
    sigma = mutation_sigma(best)

    next_population = make_new_generation(
        scored, topology, elite_fraction, random_count, rng,
        generator=generator, weights=weights, operators=operators, sigma=sigma,
    )

    fitnesses = np.array([s.fitness for s in scored], dtype=np.float64)
    elapsed = time.time() - start_time
    logger.debug(
        f"generation: best={best.fitness:.6f} sigma={sigma:.5f} "
        f"median={np.median(fitnesses):.6f} ({elapsed:.2f}s)"
    )

    return GenerationResult(
        population=next_population,
        best=ScoredGenome(best.fitness, best.genome.clone()),
        sigma=sigma,
        mean_fitness=float(fitnesses.mean()),
        median_fitness=float(np.median(fitnesses)),
        elapsed=elapsed,
    )
