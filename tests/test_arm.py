"""
Tests for the arm reference fitness.
"""

import numpy as np
import pytest
import torch

from neuroarm.arm import (
    ArmFitness,
    ArmState,
    episode_score,
    normalized_corners,
    pose_score,
    segment_endpoints,
    step_arm,
)
from neuroarm.errors import ConfigError
from neuroarm.genome import Genome
from neuroarm.topologies import BIG, SMALL, apply


def test_initial_pose_has_no_zero_coordinates():
    points = segment_endpoints(ArmState.initial())
    assert points.shape == (7, 2, 2)
    assert np.all(points != 0.0)
    assert normalized_corners(points).shape == (28,)


def test_pose_score_identical_pose():
    points = segment_endpoints(ArmState.initial())
    assert pose_score(points, points.copy()) == 1.0
    moved = points + 0.1
    assert 0.0 < pose_score(points, moved) < 1.0


def test_episode_score_blend():
    assert episode_score([0.4] * 9) == pytest.approx(0.4)
    assert episode_score([0.5]) == pytest.approx(0.5)
    # median 0.5, last 0.2, min 0.2, max 0.9
    assert episode_score([0.9, 0.5, 0.2]) == pytest.approx((5.0 + 1.0 + 0.2 + 0.9) / 17.0)


def test_step_arm_clips_joints():
    state = ArmState.initial()
    for _ in range(2000):
        state = step_arm(state, np.ones(7))
    assert np.all(np.abs(state.angles) <= 2.5)


def test_network_output_sizes():
    generator = torch.Generator().manual_seed(0)
    for topology in (SMALL, BIG):
        genome = Genome.random(topology, generator)
        out = apply(genome, torch.zeros(64))
        assert out.shape == (7,)


def test_fitness_in_unit_interval():
    generator = torch.Generator().manual_seed(3)
    fitness = ArmFitness(SMALL, steps=20)
    for _ in range(3):
        score = fitness(Genome.random(SMALL, generator))
        assert 0.0 <= score <= 1.0


def test_fitness_looks_up_topology_by_name():
    generator = torch.Generator().manual_seed(5)
    genome = Genome.random(SMALL, generator)
    assert ArmFitness(steps=5)(genome) == pytest.approx(ArmFitness(SMALL, steps=5)(genome))


def test_fitness_rejects_bad_config(tiny):
    with pytest.raises(ConfigError):
        ArmFitness(tiny)
    with pytest.raises(ConfigError):
        ArmFitness(SMALL, steps=0)
