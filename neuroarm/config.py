"""
Run configuration.

Defaults follow the arm experiments: 5 islands of 100 genomes, the top
quarter kept as elites, 3 fresh random genomes per generation, and a
migration round every 30 ticks.
"""

from dataclasses import asdict, dataclass, field
from multiprocessing import cpu_count
from typing import Any, Dict, Optional

from .errors import ConfigError
from .operators import OPERATOR_WEIGHTS

# ================================================================
# POPULATION & EVOLUTION
# ================================================================
POPULATION_SIZE = 100
ISLAND_COUNT = 5
ELITE_FRACTION = 0.25
RANDOM_COUNT = 3

# ================================================================
# MUTATION
# ================================================================
# (upper fitness bound, scale) pairs; above the last bound SMALLEST_SCALE applies
SCALE_STEPS = ((0.5, 0.15), (0.75, 0.075), (0.9, 0.05), (0.95, 0.02))
SMALLEST_SCALE = 0.01

# ================================================================
# MIGRATION
# ================================================================
MIGRATION_INTERVAL = 30
MIGRATION_EVENTS = 10
MIGRATION_SIGMA = 0.01

# ================================================================
# CHECKPOINTS
# ================================================================
CHECKPOINT_PREFIX = "best"
CHECKPOINT_HISTORY = 30


def default_workers() -> int:
    return max(1, cpu_count() - 1)


@dataclass
class EvolutionConfig:
    """Configuration for an island-model evolution run."""
    topology: str = "Small"
    population_size: int = POPULATION_SIZE
    island_count: int = ISLAND_COUNT
    elite_fraction: float = ELITE_FRACTION
    random_count: int = RANDOM_COUNT

    migration_interval: int = MIGRATION_INTERVAL
    migration_events: int = MIGRATION_EVENTS
    migration_sigma: float = MIGRATION_SIGMA

    interleave_bias: bool = True
    operator_weights: Dict[str, int] = field(default_factory=lambda: dict(OPERATOR_WEIGHTS))

    workers: int = field(default_factory=default_workers)
    use_processes: bool = False

    checkpoint_dir: str = "checkpoints"
    checkpoint_prefix: str = CHECKPOINT_PREFIX
    checkpoint_history: int = CHECKPOINT_HISTORY
    resume: bool = False

    seed: Optional[int] = None

    @property
    def elite_count(self) -> int:
        return int(self.elite_fraction * self.population_size)

    @property
    def offspring_count(self) -> int:
        return self.population_size - self.elite_count - self.random_count

    def validate(self) -> 'EvolutionConfig':
        """Raise ConfigError on inconsistent values; returns self."""
        if self.population_size <= 0:
            raise ConfigError(f"population_size must be positive, got {self.population_size}")
        if self.island_count <= 0:
            raise ConfigError(f"island_count must be positive, got {self.island_count}")
        if not 0.0 < self.elite_fraction <= 1.0:
            raise ConfigError(f"elite_fraction must be in (0, 1], got {self.elite_fraction}")
        if self.elite_count < 2:
            raise ConfigError(
                f"elite_fraction={self.elite_fraction} of {self.population_size} leaves "
                f"{self.elite_count} elites; at least 2 are needed to pick distinct parents"
            )
        if self.random_count < 0:
            raise ConfigError(f"random_count must be >= 0, got {self.random_count}")
        if self.offspring_count < 0:
            raise ConfigError(
                f"{self.elite_count} elites + {self.random_count} randoms exceed "
                f"population_size={self.population_size}"
            )
        if self.migration_interval <= 0:
            raise ConfigError(f"migration_interval must be positive, got {self.migration_interval}")
        if self.migration_events < 0:
            raise ConfigError(f"migration_events must be >= 0, got {self.migration_events}")
        if self.migration_sigma < 0:
            raise ConfigError(f"migration_sigma must be >= 0, got {self.migration_sigma}")
        unknown = set(self.operator_weights) - set(OPERATOR_WEIGHTS)
        if unknown:
            raise ConfigError(
                f"Unknown operators {sorted(unknown)}. Available: {list(OPERATOR_WEIGHTS)}"
            )
        if any(w < 0 for w in self.operator_weights.values()) or sum(self.operator_weights.values()) <= 0:
            raise ConfigError(f"operator weights must be >= 0 with a positive sum: {self.operator_weights}")
        if self.workers <= 0:
            raise ConfigError(f"workers must be positive, got {self.workers}")
        if self.checkpoint_history <= 0:
            raise ConfigError(f"checkpoint_history must be positive, got {self.checkpoint_history}")
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
