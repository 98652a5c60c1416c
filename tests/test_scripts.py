"""
Tests for the run_evolution.py and replay.py entry points.
"""

from collections import OrderedDict

import pytest
import torch

import replay
import run_evolution
from neuroarm.arm import ArmFitness
from neuroarm.checkpoint import CheckpointStore
from neuroarm.errors import CheckpointError
from neuroarm.genome import Genome, Layer
from neuroarm.topologies import SMALL


def small_run_args(tmp_path, *extra):
    return [
        '--checkpoint_dir', str(tmp_path / "checkpoints"),
        '--log_dir', str(tmp_path / "logs"),
        '--islands', '2',
        '--population', '8',
        '--randoms', '1',
        '--steps', '2',
        '--generations', '1',
        '--workers', '1',
        '--seed', '0',
        *extra,
    ]


def test_resume_run_survives_corrupt_checkpoint(tmp_path):
    checkpoints = tmp_path / "checkpoints"
    checkpoints.mkdir()
    (checkpoints / "best_Small_5.pt").write_bytes(b"truncated")

    assert run_evolution.main(small_run_args(tmp_path, '--resume')) == 0
    assert (checkpoints / "summary_Small.json").exists()
    # Numbering continues after the unreadable record
    assert (checkpoints / "best_Small_6.pt").exists()


def test_resume_run_rejects_stale_checkpoint(tmp_path):
    store = CheckpointStore(tmp_path / "checkpoints")
    stale = Genome(OrderedDict(input=Layer(torch.zeros(8, 64), torch.zeros(8))), "Small")
    store.save(stale, "Small", 1)

    assert run_evolution.main(small_run_args(tmp_path, '--resume')) == 1


def test_invalid_config_exit_code(tmp_path):
    assert run_evolution.main(small_run_args(tmp_path, '--elite_fraction', '0.1')) == 2


def test_replay_scores_saved_genome(tmp_path):
    generator = torch.Generator().manual_seed(11)
    genome = Genome.random(SMALL, generator)
    record = CheckpointStore(tmp_path).save(genome, "Small", 3)

    episode = replay.replay(tmp_path / record.format(), steps=5, log_every=1)

    assert len(episode.step_scores) == len(episode.mapes) == 5
    assert all(s == pytest.approx(1.0 / (m + 1.0)) for s, m in zip(episode.step_scores, episode.mapes))
    assert episode.score == pytest.approx(ArmFitness(SMALL, steps=5)(genome))
    assert 0.0 <= episode.score <= 1.0


def test_replay_rejects_bad_names(tmp_path):
    (tmp_path / "notes.pt").write_bytes(b"")
    with pytest.raises(CheckpointError):
        replay.replay(tmp_path / "notes.pt", steps=2)

    assert replay.main([str(tmp_path / "notes.pt")]) == 1
    assert replay.main([str(tmp_path / "best_Huge_1.pt")]) == 2
    assert replay.main([str(tmp_path / "best_Small_9.pt")]) == 1
