#!/usr/bin/env python3
"""
Replay a saved genome on the arm and report how it scores.

Usage:
    python replay.py checkpoints/best_Small_42.pt
    python replay.py checkpoints/best_Big_7.pt --steps 1000 --log_every 10

The topology is read from the record name, so any file written by
run_evolution.py can be replayed without extra flags.
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from neuroarm.arm import ArmFitness, Episode
from neuroarm.checkpoint import CheckpointStore, RecordId
from neuroarm.errors import CheckpointError, ConfigError, InvariantViolation
from neuroarm.logging_setup import setup_logger
from neuroarm.topologies import get_topology


def replay(path, steps: int = 500, log_every: int = 50) -> Episode:
    """
    Load a checkpoint record and run it for one episode.

    Args:
        path: Path to a <prefix>_<topology>_<sequence>.pt file
        steps: Simulation steps
        log_every: Log the step score and mape every this many steps (0 for none)

    Returns:
        The Episode with per-step scores and mapes
    """
    path = Path(path)
    record = RecordId.parse(path.name)
    if record is None:
        raise CheckpointError(f"{path.name} is not a checkpoint record name")

    topology = get_topology(record.topology)
    store = CheckpointStore(path.parent, record.prefix)
    genome = store.load(record, topology)
    logger.info(f"Replaying {record} ({topology.name}, {genome.num_parameters():,} params)")

    episode = ArmFitness(topology, steps=steps).rollout(genome)
    for step, (score, mape) in enumerate(zip(episode.step_scores, episode.mapes)):
        if log_every and step % log_every == 0:
            logger.info(f"step {step}: score={score:.6f} mape={mape:.6f}")

    logger.info(
        f"Episode score {episode.score:.6f} "
        f"(min {min(episode.step_scores):.6f}, max {max(episode.step_scores):.6f})"
    )
    return episode


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Replay a saved arm controller")
    parser.add_argument('record', type=str,
                        help='Checkpoint file, e.g. checkpoints/best_Small_42.pt')
    parser.add_argument('--steps', type=int, default=500,
                        help='Simulation steps')
    parser.add_argument('--log_every', type=int, default=50,
                        help='Log every N steps (0 for summary only)')
    parser.add_argument('--log_level', type=str, default='INFO',
                        help='Logging level')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logger(None, args.log_level)

    try:
        replay(args.record, args.steps, args.log_every)
    except ConfigError as e:
        logger.error(f"Invalid replay: {e}")
        return 2
    except (CheckpointError, InvariantViolation) as e:
        logger.error(f"Cannot replay {args.record}: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
