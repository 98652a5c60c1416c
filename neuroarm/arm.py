"""
Reference fitness function: a planar kinematic arm.

A chain of seven rigid segments (tricep, forearm, palm, two index-finger
segments, two thumb segments) hangs off a wall joint. The controller
outputs one torque in [-1, 1] per segment each step; gravity and joint
damping act on every segment. The task is to hold the initial pose, scored
per step as 1 / (mape + 1) where mape is the mean absolute percentage error
between the initial and current segment endpoints.

This is a stand-in for a real physics engine so the evolution engine can
be run and tested end to end; it makes no claim of physical accuracy.

Network input (64 values):
  previous normalized endpoints (28) + current normalized endpoints (28)
  + 8 ball placeholders (zeros)
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import torch

from .errors import ConfigError
from .genome import Genome, Topology
from .topologies import ARM_INPUT_SIZE, ARM_OUTPUT_SIZE, apply, get_topology

WALL_HALF_WIDTH = 0.2
SHOULDER = (WALL_HALF_WIDTH, 0.5)

# (name, length, parent index or -1 for the wall)
SEGMENTS: Tuple[Tuple[str, float, int], ...] = (
    ("tricep", 0.5, -1),
    ("forearm", 0.5, 0),
    ("palm", 0.1, 1),
    ("lower_index", 0.05, 2),
    ("upper_index", 0.05, 3),
    ("lower_thumb", 0.05, 2),
    ("upper_thumb", 0.05, 5),
)
# The thumb hangs below the palm
INITIAL_ANGLES = np.array([0.0, 0.0, 0.0, 0.0, 0.0, -np.pi / 2, 0.0])

MIN_X = WALL_HALF_WIDTH
MAX_X = WALL_HALF_WIDTH + sum(length for _, length, _ in SEGMENTS[:5])
MIN_Y = -2.0 + 0.1
MAX_Y = 2.0 + MAX_X
BALL_PLACEHOLDERS = 8


def normalize_x(x):
    return (x - MIN_X) / (MAX_X - MIN_X)


def normalize_y(y):
    return (y - MIN_Y) / (MAX_Y - MIN_Y)


@dataclass
class ArmState:
    """Relative joint angles and angular velocities, one per segment."""
    angles: np.ndarray
    velocities: np.ndarray

    @classmethod
    def initial(cls) -> 'ArmState':
        return cls(INITIAL_ANGLES.copy(), np.zeros(len(SEGMENTS)))


def segment_endpoints(state: ArmState) -> np.ndarray:
    """
    Start and end point of every segment.

    Returns:
        Array of shape (n_segments, 2, 2): [segment, (start, end), (x, y)]
    """
    n = len(SEGMENTS)
    points = np.zeros((n, 2, 2))
    absolute = np.zeros(n)
    for i, (_, length, parent) in enumerate(SEGMENTS):
        if parent < 0:
            start = np.array(SHOULDER)
            absolute[i] = state.angles[i]
        else:
            start = points[parent, 1]
            absolute[i] = absolute[parent] + state.angles[i]
        end = start + length * np.array([np.cos(absolute[i]), np.sin(absolute[i])])
        points[i, 0] = start
        points[i, 1] = end
    return points


def _absolute_angles(state: ArmState) -> np.ndarray:
    absolute = np.zeros(len(SEGMENTS))
    for i, (_, _, parent) in enumerate(SEGMENTS):
        absolute[i] = state.angles[i] + (absolute[parent] if parent >= 0 else 0.0)
    return absolute


def step_arm(
    state: ArmState,
    torques: np.ndarray,
    dt: float = 1.0 / 240.0,
    max_torque: float = 40.0,
    damping: float = 4.0,
    gravity: float = 9.81,
    joint_limit: float = 2.5,
) -> ArmState:
    """Advance the arm one step; returns a new state."""
    torques = np.clip(torques, -1.0, 1.0)
    lengths = np.array([length for _, length, _ in SEGMENTS])
    absolute = _absolute_angles(state)

    # Gravity pulls every segment down, harder on the longer ones
    gravity_torque = gravity * np.cos(absolute) / (2.0 * lengths.clip(min=0.05))
    accel = max_torque * torques - damping * state.velocities - gravity_torque

    velocities = state.velocities + accel * dt
    angles = np.clip(state.angles + velocities * dt, -joint_limit, joint_limit)
    return ArmState(angles, velocities)


def normalized_corners(points: np.ndarray) -> np.ndarray:
    flat = points.reshape(-1, 2)
    return np.stack([normalize_x(flat[:, 0]), normalize_y(flat[:, 1])], axis=1).reshape(-1)


def pose_mape(initial: np.ndarray, current: np.ndarray) -> float:
    """Mean absolute percentage error between two raw endpoint arrays."""
    initial = initial.reshape(-1)
    current = current.reshape(-1)
    return float(np.mean(np.abs((initial - current) / initial)))


def pose_score(initial: np.ndarray, current: np.ndarray) -> float:
    """1 / (mape + 1) between two raw endpoint arrays."""
    return 1.0 / (pose_mape(initial, current) + 1.0)


def episode_score(step_scores: List[float]) -> float:
    """Weighted blend of median, last, worst and best step scores."""
    last = step_scores[-1]
    ordered = sorted(step_scores)
    median = ordered[len(ordered) // 2]
    return (median * 10.0 + last * 5.0 + ordered[0] + ordered[-1]) / 17.0


@dataclass
class Episode:
    """Per-step record of one simulated episode."""
    step_scores: List[float]
    mapes: List[float]

    @property
    def score(self) -> float:
        return episode_score(self.step_scores)


class ArmFitness:
    """
    Callable fitness function scoring a genome on the arm task.

    Args:
        topology: Topology of the genomes (looked up by genome name if None)
        steps: Simulation steps per episode
        dt: Integration step
    """

    def __init__(self, topology: Optional[Topology] = None, steps: int = 500, dt: float = 1.0 / 240.0):
        if steps < 1:
            raise ConfigError(f"steps must be >= 1, got {steps}")
        if topology is not None and (
            topology.input_size != ARM_INPUT_SIZE or topology.output_size != ARM_OUTPUT_SIZE
        ):
            raise ConfigError(
                f"Arm needs {ARM_INPUT_SIZE} inputs and {ARM_OUTPUT_SIZE} outputs, "
                f"topology {topology.name} has {topology.input_size} -> {topology.output_size}"
            )
        self.topology = topology
        self.steps = steps
        self.dt = dt

    def rollout(self, genome: Genome) -> Episode:
        """Run one episode and keep the score and mape of every step."""
        topology = self.topology or get_topology(genome.topology_name)
        state = ArmState.initial()
        initial = segment_endpoints(state)
        previous = normalized_corners(initial)
        ball = np.zeros(BALL_PLACEHOLDERS)

        episode = Episode([], [])
        for _ in range(self.steps):
            current = normalized_corners(segment_endpoints(state))
            inputs = np.concatenate([previous, current, ball]).astype(np.float32)
            previous = current

            torques = apply(genome, torch.from_numpy(inputs), topology).numpy()
            state = step_arm(state, torques.astype(np.float64), dt=self.dt)
            mape = pose_mape(initial, segment_endpoints(state))
            episode.mapes.append(mape)
            episode.step_scores.append(1.0 / (mape + 1.0))
        return episode

    def __call__(self, genome: Genome) -> float:
        return self.rollout(genome).score
