"""
Checkpoint store.

Each saved genome is one file named <prefix>_<topology>_<sequence>.pt.
The topology name keeps records of different networks apart and the
sequence number orders them, so the most recent records can be found
from the directory listing alone.
"""

import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

import torch
from loguru import logger

from .errors import CheckpointError
from .genome import RECORD_DELIMITER, Genome, Topology, ensure_topology
from .generation import ScoredGenome, make_new_generation

RECORD_SUFFIX = ".pt"


@dataclass(frozen=True)
class RecordId:
    """Identifies a saved genome by prefix, topology name and sequence number."""
    prefix: str
    topology: str
    sequence: int

    def format(self) -> str:
        return f"{self.prefix}{RECORD_DELIMITER}{self.topology}{RECORD_DELIMITER}{self.sequence}{RECORD_SUFFIX}"

    @classmethod
    def parse(cls, filename: str) -> Optional['RecordId']:
        """Parse a record file name; returns None if it is not one."""
        if not filename.endswith(RECORD_SUFFIX):
            return None
        stem = filename[:-len(RECORD_SUFFIX)]
        parts = stem.split(RECORD_DELIMITER)
        if len(parts) != 3:
            return None
        prefix, topology, sequence = parts
        if not prefix or not topology or not sequence.isdigit():
            return None
        return cls(prefix, topology, int(sequence))

    def __str__(self) -> str:
        return self.format()


class CheckpointStore:
    """
    Directory of saved genomes.

    Args:
        directory: Where record files live (created on first save)
        prefix: Record name prefix
    """

    def __init__(self, directory: Union[str, Path], prefix: str = "best"):
        if not prefix or RECORD_DELIMITER in prefix:
            raise CheckpointError(f"Invalid record prefix {prefix!r}")
        self.directory = Path(directory)
        self.prefix = prefix

    def path_for(self, record: RecordId) -> Path:
        return self.directory / record.format()

    def save(self, genome: Genome, topology_name: str, sequence: int) -> RecordId:
        """Write a genome; raises CheckpointError on I/O failure."""
        record = RecordId(self.prefix, topology_name, sequence)
        path = self.path_for(record)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            torch.save(genome.state_dict(), path)
        except (OSError, RuntimeError) as e:
            raise CheckpointError(f"Failed to save {path}: {e}") from e
        logger.debug(f"Saved checkpoint {path}")
        return record

    def _records(self, topology_name: str) -> List[RecordId]:
        if not self.directory.is_dir():
            return []
        records = []
        for path in self.directory.iterdir():
            record = RecordId.parse(path.name)
            if record is None:
                logger.debug(f"Skipping unparsable checkpoint name {path.name}")
                continue
            if record.prefix != self.prefix or record.topology != topology_name:
                continue
            records.append(record)
        return records

    def list_recent(self, topology_name: str, max_count: int = 30) -> List[RecordId]:
        """Most recent records for a topology, highest sequence first."""
        records = sorted(self._records(topology_name), key=lambda r: r.sequence, reverse=True)
        return records[:max_count]

    def next_sequence(self, topology_name: str) -> int:
        """One past the highest existing sequence (0 if none)."""
        records = self._records(topology_name)
        return max((r.sequence for r in records), default=-1) + 1

    def load(self, record: RecordId, topology: Optional[Topology] = None) -> Genome:
        """
        Read a genome.

        Raises CheckpointError on any I/O or format failure. If a topology
        is given, a genome with other layers or shapes raises ShapeMismatch.
        """
        path = self.path_for(record)
        try:
            state = torch.load(path, map_location="cpu")
            genome = Genome.from_state_dict(state)
        except Exception as e:
            raise CheckpointError(f"Failed to load {path}: {e}") from e
        if genome.topology_name != record.topology:
            raise CheckpointError(
                f"{path} holds a {genome.topology_name!r} genome, expected {record.topology!r}"
            )
        if topology is not None:
            ensure_topology(genome, topology, operator="load")
        return genome


def resume_population(
    store: CheckpointStore,
    topology: Topology,
    population_size: int,
    elite_fraction: float,
    random_count: int,
    rng: random.Random,
    generator: Optional[torch.Generator] = None,
    max_records: int = 30,
    **fill_kwargs,
) -> List[Genome]:
    """
    Rebuild a population from the most recent checkpoints.

    Up to elite_fraction * population_size recent records (cycled when
    there are fewer) seed the elite slots of a fresh random population,
    then one fill pass produces the rest. Unreadable records are logged
    and skipped; a record with the wrong layer shapes raises ShapeMismatch.
    Without readable records a fresh random population is returned.
    """
    elite_count = int(elite_fraction * population_size)
    loaded, latest = [], None
    for record in store.list_recent(topology.name, max_records):
        if len(loaded) == elite_count:
            break
        try:
            loaded.append(store.load(record, topology))
        except CheckpointError as e:
            logger.error(f"Skipping unreadable checkpoint: {e}")
            continue
        latest = latest or record

    if not loaded:
        logger.warning(f"No readable {topology.name} checkpoints in {store.directory}, starting fresh")
        return [Genome.random(topology, generator) for _ in range(population_size)]

    seeds = [loaded[i % len(loaded)].clone() for i in range(elite_count)]
    logger.info(
        f"Resuming {topology.name} from {len(loaded)} checkpoints "
        f"(latest {latest}), seeding {elite_count} elites"
    )

    fresh = [Genome.random(topology, generator) for _ in range(population_size - elite_count)]

    # Unknown fitness: equal scores keep the loaded genomes in front
    scored = [ScoredGenome(0.0, g) for g in seeds + fresh]
    return make_new_generation(
        scored, topology, elite_fraction, random_count, rng,
        generator=generator, **fill_kwargs,
    )
