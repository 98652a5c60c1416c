"""
NeuroArm - island-model neuroevolution of arm controllers

Evolves fixed-topology feed-forward networks with a genetic algorithm:
mutation, several crossover operators, elitism and island migration.

Core components:
- Genome: ordered weight/bias layers sharing one Topology per run
- operators: jiggle, combine, interleave, average, layer_swap
- make_new_generation: elites + randoms + offspring with adaptive sigma
- IslandScheduler: parallel islands with periodic migration
- CheckpointStore: best-genome records and resume
- ArmFitness: reference fitness on a kinematic arm
"""

from .errors import NeuroArmError, InvariantViolation, ShapeMismatch, CheckpointError, ConfigError
from .genome import Genome, Layer, LayerSpec, Topology, shapes_match, ensure_topology, max_amplitude
from .topologies import SMALL, BIG, TOPOLOGIES, get_topology, apply
from .operators import (
    OPERATOR_WEIGHTS,
    jiggle, combine, interleave, average, layer_swap,
    make_offspring, make_distinct,
)
from .config import EvolutionConfig
from .generation import (
    ScoredGenome, GenerationResult,
    evaluate_population, rank, scale_factor, mutation_sigma,
    make_new_generation, run_generation,
)
from .checkpoint import RecordId, CheckpointStore, resume_population
from .islands import IslandScheduler, RunSummary, island_crossing
from .arm import ArmFitness

__version__ = "0.1.0"

__all__ = [
    # Errors
    "NeuroArmError",
    "InvariantViolation",
    "ShapeMismatch",
    "CheckpointError",
    "ConfigError",
    # Genome
    "Genome",
    "Layer",
    "LayerSpec",
    "Topology",
    "shapes_match",
    "ensure_topology",
    "max_amplitude",
    "SMALL",
    "BIG",
    "TOPOLOGIES",
    "get_topology",
    "apply",
    # Operators
    "OPERATOR_WEIGHTS",
    "jiggle",
    "combine",
    "interleave",
    "average",
    "layer_swap",
    "make_offspring",
    "make_distinct",
    # Evolution
    "EvolutionConfig",
    "ScoredGenome",
    "GenerationResult",
    "evaluate_population",
    "rank",
    "scale_factor",
    "mutation_sigma",
    "make_new_generation",
    "run_generation",
    "IslandScheduler",
    "RunSummary",
    "island_crossing",
    # Checkpoints
    "RecordId",
    "CheckpointStore",
    "resume_population",
    # Fitness
    "ArmFitness",
]
