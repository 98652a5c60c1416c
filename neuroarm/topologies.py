"""
Network topologies and the forward pass.

Each topology is a fixed stack of fully connected layers. The engine never
looks at activations; they only matter when a fitness function turns an
input vector into an output vector with apply().

Available topologies:
- Small: 64 -> 128 -> 14 -> 7 (relu, relu, tanh)
- Big:   64 -> 64 -> 64 -> 64 -> 32 -> 7 (sigmoid x3, softmax, sigmoid)
"""

from typing import Dict, Optional, Sequence, Union

import torch
import torch.nn.functional as F

from .errors import ConfigError
from .genome import Genome, LayerSpec, Topology

ARM_INPUT_SIZE = 64
ARM_OUTPUT_SIZE = 7


SMALL = Topology(
    name="Small",
    layers=(
        LayerSpec("input", ARM_INPUT_SIZE, 128, activation="relu"),
        LayerSpec("hidden", 128, 14, activation="relu"),
        LayerSpec("output", 14, ARM_OUTPUT_SIZE, activation="tanh"),
    ),
)

BIG = Topology(
    name="Big",
    layers=(
        LayerSpec("input", ARM_INPUT_SIZE, 64, activation="sigmoid"),
        LayerSpec("hidden1", 64, 64, activation="sigmoid"),
        LayerSpec("hidden2", 64, 64, activation="sigmoid"),
        LayerSpec("hidden3", 64, 32, activation="softmax"),
        LayerSpec("output", 32, ARM_OUTPUT_SIZE, activation="sigmoid"),
    ),
)

# Registry for easy lookup
TOPOLOGIES: Dict[str, Topology] = {
    SMALL.name: SMALL,
    BIG.name: BIG,
}


def get_topology(name: str) -> Topology:
    """Get a topology by name."""
    if name not in TOPOLOGIES:
        raise ConfigError(f"Unknown topology: {name}. Available: {list(TOPOLOGIES.keys())}")
    return TOPOLOGIES[name]


def _activate(x: torch.Tensor, activation: str) -> torch.Tensor:
    if activation == "relu":
        return F.relu(x)
    if activation == "tanh":
        return torch.tanh(x)
    if activation == "sigmoid":
        return torch.sigmoid(x)
    if activation == "softmax":
        return F.softmax(x, dim=-1)
    return x


def apply(
    genome: Genome,
    inputs: Union[torch.Tensor, Sequence[float]],
    topology: Optional[Topology] = None,
) -> torch.Tensor:
    """
    Forward pass.

    Args:
        genome: Parameters to run
        inputs: Input of shape (input_size,) or (batch, input_size)
        topology: Topology supplying activations (looked up by the genome's
            topology name if omitted)

    Returns:
        Output of shape (output_size,) or (batch, output_size)
    """
    topology = topology or get_topology(genome.topology_name)

    if not isinstance(inputs, torch.Tensor):
        inputs = torch.tensor(inputs, dtype=torch.float32)

    x = inputs
    with torch.no_grad():
        for spec in topology.layers:
            layer = genome.layer(spec.name)
            x = _activate(F.linear(x, layer.weight, layer.bias), spec.activation)
    return x
