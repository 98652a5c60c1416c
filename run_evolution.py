#!/usr/bin/env python3
"""
Island-model evolution of arm controllers.

Usage:
    python run_evolution.py --topology Small --generations 1000
    python run_evolution.py --resume --checkpoint_dir checkpoints
    python run_evolution.py --islands 2 --population 20 --steps 100 --generations 5

This script:
1. Builds (or resumes from checkpoints) the island populations
2. Evolves them, saving every new best genome
3. Writes a JSON run summary next to the checkpoints
"""

import argparse
import json
import random
import sys
from pathlib import Path

import numpy as np
import torch
from loguru import logger

from neuroarm.arm import ArmFitness
from neuroarm.checkpoint import CheckpointStore
from neuroarm.config import EvolutionConfig, default_workers
from neuroarm.errors import CheckpointError, ConfigError, InvariantViolation
from neuroarm.islands import IslandScheduler
from neuroarm.logging_setup import setup_logger
from neuroarm.topologies import TOPOLOGIES, get_topology


def setup_seed(seed):
    """Set random seeds for reproducibility."""
    if seed is not None:
        random.seed(seed)
        np.random.seed(seed)
        torch.manual_seed(seed)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Evolve arm controllers with an island-model GA")
    parser.add_argument('--topology', type=str, default='Small', choices=list(TOPOLOGIES.keys()),
                        help='Network topology')
    parser.add_argument('--generations', type=int, default=10000,
                        help='Number of ticks (each evolves every island once)')
    parser.add_argument('--islands', type=int, default=5,
                        help='Number of islands')
    parser.add_argument('--population', type=int, default=100,
                        help='Genomes per island')
    parser.add_argument('--elite_fraction', type=float, default=0.25,
                        help='Fraction of each island kept unchanged')
    parser.add_argument('--randoms', type=int, default=3,
                        help='Fresh random genomes per generation')
    parser.add_argument('--migration_interval', type=int, default=30,
                        help='Ticks between migration rounds')
    parser.add_argument('--migration_events', type=int, default=10,
                        help='Crossings per migration round')
    parser.add_argument('--steps', type=int, default=500,
                        help='Simulation steps per fitness evaluation')
    parser.add_argument('--workers', type=int, default=default_workers(),
                        help='Fitness evaluation workers')
    parser.add_argument('--processes', action='store_true',
                        help='Evaluate in worker processes instead of threads')
    parser.add_argument('--no_bias_interleave', action='store_true',
                        help='Interleave copies the father bias instead of mixing it')
    parser.add_argument('--checkpoint_dir', type=str, default='checkpoints',
                        help='Directory for best-genome records')
    parser.add_argument('--resume', action='store_true',
                        help='Seed populations from the most recent checkpoints')
    parser.add_argument('--seed', type=int, default=None,
                        help='Random seed')
    parser.add_argument('--log_dir', type=str, default='logs',
                        help='Directory for log files')
    parser.add_argument('--log_level', type=str, default='INFO',
                        help='Logging level')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logger(args.log_dir, args.log_level)
    setup_seed(args.seed)

    config = EvolutionConfig(
        topology=args.topology,
        population_size=args.population,
        island_count=args.islands,
        elite_fraction=args.elite_fraction,
        random_count=args.randoms,
        migration_interval=args.migration_interval,
        migration_events=args.migration_events,
        interleave_bias=not args.no_bias_interleave,
        workers=args.workers,
        use_processes=args.processes,
        checkpoint_dir=args.checkpoint_dir,
        resume=args.resume,
        seed=args.seed,
    )

    try:
        config.validate()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    topology = get_topology(config.topology)
    store = CheckpointStore(config.checkpoint_dir, config.checkpoint_prefix)
    fitness = ArmFitness(topology, steps=args.steps)

    logger.info(f"Topology: {topology.name} ({topology.num_parameters():,} params)")
    logger.info(
        f"Islands: {config.island_count} x {config.population_size}, "
        f"elites={config.elite_count}, randoms={config.random_count}, "
        f"offspring={config.offspring_count}"
    )

    try:
        scheduler = IslandScheduler(config, fitness, topology, store=store)
        summary = scheduler.run(args.generations)
    except InvariantViolation:
        logger.exception("Evolution aborted")
        return 1
    except CheckpointError as e:
        logger.error(f"Checkpoint failure: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Evolution interrupted")
        return 130

    summary_path = Path(config.checkpoint_dir) / f"summary_{topology.name}.json"
    summary_path.parent.mkdir(parents=True, exist_ok=True)
    with open(summary_path, 'w') as f:
        json.dump({'config': config.to_dict(), **summary.to_dict()}, f, indent=2)
    logger.info(f"Best score {summary.best_fitness:.6f} ({summary.best_record}); summary: {summary_path}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
