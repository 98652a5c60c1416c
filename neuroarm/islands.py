"""
Island-model scheduler.

Several populations evolve independently. Every migration_interval ticks a
migration round breeds elites from two different islands and drops the
child into the mother's island. The process-wide best genome is saved to
the checkpoint store every time it improves.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import torch
from loguru import logger

from .checkpoint import CheckpointStore, RecordId, resume_population
from .config import EvolutionConfig
from .errors import CheckpointError, InvariantViolation
from .generation import (
    FitnessFunction,
    GenerationResult,
    ScoredGenome,
    make_pool,
    run_generation,
)
from .genome import Genome, Topology
from .operators import make_distinct, make_offspring, operator_table

NewBestCallback = Callable[[int, int, ScoredGenome], None]


@dataclass
class RunSummary:
    """Result of IslandScheduler.run()."""
    ticks: int
    best_fitness: float
    best_record: Optional[str]
    history: List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'ticks': self.ticks,
            'best_fitness': self.best_fitness,
            'best_record': self.best_record,
            'history': self.history,
        }


def island_crossing(
    islands: List[List[Genome]],
    elite_count: int,
    events: int,
    sigma: float,
    rng: random.Random,
    generator: Optional[torch.Generator] = None,
    slot_count: Optional[int] = None,
    operators=None,
    weights=None,
):
    """
    Migrate between islands in place.

    Elites sit at the end of each population. For every event, two distinct
    islands supply a random elite each; the child replaces a random slot
    among the first `slot_count` slots of the mother's island (the fresh
    random region), or any slot if slot_count is 0/None.
    """
    if len(islands) < 2:
        raise InvariantViolation(f"migration needs at least 2 islands, got {len(islands)}")
    if elite_count < 1:
        raise InvariantViolation("migration needs at least one elite per island")

    # Snapshot so children of this round never become parents in it
    best = [[g.clone() for g in island[-elite_count:]] for island in islands]

    for _ in range(events):
        mothers_island, fathers_island = make_distinct(len(islands), rng)
        mother = best[mothers_island][rng.randrange(len(best[mothers_island]))]
        father = best[fathers_island][rng.randrange(len(best[fathers_island]))]
        offspring = make_offspring(mother, father, sigma, rng, generator, weights, operators)

        target = islands[mothers_island]
        limit = min(slot_count, len(target)) if slot_count else len(target)
        target[rng.randrange(limit)] = offspring


class IslandScheduler:
    """
    Owns the island set and drives evolution.

    Args:
        config: Run configuration
        fitness_fn: Callable scoring one genome
        topology: Topology shared by every genome in the run
        store: Optional checkpoint store for best genomes
        islands: Optional initial populations (otherwise fresh or resumed)
        on_new_best: Optional callback (tick, island, scored) on a new best
    """

    def __init__(
        self,
        config: EvolutionConfig,
        fitness_fn: FitnessFunction,
        topology: Topology,
        store: Optional[CheckpointStore] = None,
        islands: Optional[List[List[Genome]]] = None,
        on_new_best: Optional[NewBestCallback] = None,
    ):
        self.config = config.validate()
        self.fitness_fn = fitness_fn
        self.topology = topology
        self.store = store
        self.on_new_best = on_new_best

        self.rng = random.Random(config.seed)
        self.generator = torch.Generator()
        if config.seed is not None:
            self.generator.manual_seed(config.seed)
        else:
            self.generator.seed()

        self.operators = operator_table(config.interleave_bias)
        self.tick_count = 0
        self.best_fitness = 0.0
        self.best_genome: Optional[Genome] = None
        self.best_record: Optional[RecordId] = None
        self.history: List[dict] = []

        self._sequence = store.next_sequence(topology.name) if store is not None else 0
        self.islands = islands if islands is not None else self._initial_islands()

        for i, island in enumerate(self.islands):
            if len(island) != config.population_size:
                raise InvariantViolation(
                    f"island has {len(island)} genomes, expected {config.population_size}",
                    island=i,
                )

        logger.info(
            f"Initialized {len(self.islands)} islands x {config.population_size} "
            f"{topology.name} genomes ({topology.num_parameters():,} params each)"
        )

    def _initial_islands(self) -> List[List[Genome]]:
        cfg = self.config
        if cfg.resume and self.store is not None:
            return [
                resume_population(
                    self.store, self.topology, cfg.population_size, cfg.elite_fraction,
                    cfg.random_count, self.rng, self.generator,
                    max_records=cfg.checkpoint_history,
                    weights=cfg.operator_weights, operators=self.operators,
                )
                for _ in range(cfg.island_count)
            ]
        if cfg.resume:
            logger.warning("Resume requested without a checkpoint store, starting fresh")
        return [
            [Genome.random(self.topology, self.generator) for _ in range(cfg.population_size)]
            for _ in range(cfg.island_count)
        ]

    def _evolve_island(self, index: int, pool) -> GenerationResult:
        cfg = self.config
        try:
            return run_generation(
                self.islands[index], self.fitness_fn, self.topology,
                cfg.elite_fraction, cfg.random_count, self.rng,
                generator=self.generator, pool=pool,
                weights=cfg.operator_weights, operators=self.operators,
            )
        except InvariantViolation as e:
            raise e.with_context(island=index, tick=self.tick_count)

    def _record_best(self, island: int, best: ScoredGenome):
        if best.fitness <= self.best_fitness and self.best_genome is not None:
            return

        self.best_fitness = best.fitness
        self.best_genome = best.genome.clone()
        logger.info(f"{self.tick_count},{island} New best score: {best.fitness:.6f}")

        if self.store is not None:
            try:
                self.best_record = self.store.save(best.genome, self.topology.name, self._sequence)
                self._sequence += 1
            except CheckpointError as e:
                logger.error(f"Checkpoint save failed, continuing run: {e}")

        if self.on_new_best is not None:
            self.on_new_best(self.tick_count, island, best)

    def _tick_stats(self, results: List[GenerationResult]) -> dict:
        """One history entry per tick: best fitness overall and per island."""
        return {
            'tick': self.tick_count,
            'best_fitness': max(r.best.fitness for r in results),
            'island_best': [r.best.fitness for r in results],
            'sigma': [r.sigma for r in results],
            'elapsed': sum(r.elapsed for r in results),
        }

    def migrate(self):
        """Run one migration round across all islands."""
        cfg = self.config
        if len(self.islands) < 2:
            logger.debug("Single island, skipping migration")
            return
        logger.info(f"{self.tick_count} Migrating: {cfg.migration_events} crossings")
        try:
            island_crossing(
                self.islands, cfg.elite_count, cfg.migration_events, cfg.migration_sigma,
                self.rng, self.generator, slot_count=cfg.random_count,
                operators=self.operators, weights=cfg.operator_weights,
            )
        except InvariantViolation as e:
            raise e.with_context(tick=self.tick_count)

    def tick(self, pool=None) -> List[GenerationResult]:
        """
        Evolve every island by one generation, then migrate if due.

        Returns:
            One GenerationResult per island
        """
        results = []
        for index in range(len(self.islands)):
            result = self._evolve_island(index, pool)
            logger.info(
                f"{self.tick_count},{index} Best score: {result.best.fitness:.6f} "
                f"sigma={result.sigma:.5f} ({result.elapsed * 1000:.0f} ms)"
            )
            self.islands[index] = result.population
            self._record_best(index, result.best)
            results.append(result)

        self.history.append(self._tick_stats(results))

        if self.tick_count % self.config.migration_interval == 0:
            self.migrate()

        self.tick_count += 1
        return results

    def run(self, generations: int) -> RunSummary:
        """Run `generations` ticks with a shared worker pool."""
        start_time = time.time()
        with make_pool(self.config.workers, self.config.use_processes) as pool:
            for _ in range(generations):
                self.tick(pool)

        logger.info(
            f"Finished {self.tick_count} ticks in {time.time() - start_time:.1f}s, "
            f"best score {self.best_fitness:.6f}"
        )
        return RunSummary(
            ticks=self.tick_count,
            best_fitness=self.best_fitness,
            best_record=str(self.best_record) if self.best_record is not None else None,
            history=list(self.history),
        )
