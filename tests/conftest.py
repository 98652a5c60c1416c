"""
Shared fixtures: a tiny topology and a deterministic fitness function.
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import random

import pytest
import torch

from neuroarm.genome import Genome, LayerSpec, Topology


TINY = Topology(
    name="Tiny",
    layers=(
        LayerSpec("l1", 4, 4, activation="tanh"),
        LayerSpec("l2", 4, 3, activation="tanh"),
        LayerSpec("l3", 3, 2, activation="tanh"),
    ),
)


def weight_sum_fitness(genome: Genome) -> float:
    """Deterministic score in (0, 1): sigmoid of the first layer's weight sum."""
    return float(torch.sigmoid(genome.layer("l1").weight.sum()))


@pytest.fixture
def tiny():
    return TINY


@pytest.fixture
def generator():
    g = torch.Generator()
    g.manual_seed(1234)
    return g


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def population(tiny, generator):
    return [Genome.random(tiny, generator) for _ in range(10)]
