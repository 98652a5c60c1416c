"""
Genome representation.

A Genome is an ordered collection of named layers, each holding a weight
matrix of shape [out, in] and an optional bias vector of shape [out].
Every genome in a run is built from the same Topology, so any two of them
can be recombined layer by layer.

Genomes are treated as values: nothing in the engine writes into a
genome's tensors after construction. Operators build new tensors and wrap
them in a new Genome.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import torch

from .errors import ConfigError, InvariantViolation, ShapeMismatch

RECORD_DELIMITER = "_"
ACTIVATIONS = ("relu", "tanh", "sigmoid", "softmax", "identity")


@dataclass(frozen=True)
class LayerSpec:
    """Shape and activation of one fully connected layer."""
    name: str
    in_features: int
    out_features: int
    activation: str = "relu"
    bias: bool = True

    def __post_init__(self):
        if self.in_features <= 0 or self.out_features <= 0:
            raise ConfigError(f"Layer {self.name!r} must have positive sizes")
        if self.activation not in ACTIVATIONS:
            raise ConfigError(
                f"Unknown activation {self.activation!r} for layer {self.name!r}. "
                f"Available: {list(ACTIVATIONS)}"
            )


@dataclass(frozen=True)
class Topology:
    """
    Network topology shared by every genome in a run.

    The name is used in checkpoint record names, so it may not contain the
    record delimiter.
    """
    name: str
    layers: Tuple[LayerSpec, ...]

    def __post_init__(self):
        if not self.name or RECORD_DELIMITER in self.name:
            raise ConfigError(
                f"Topology name {self.name!r} must be non-empty and not contain {RECORD_DELIMITER!r}"
            )
        if not self.layers:
            raise ConfigError(f"Topology {self.name!r} has no layers")
        names = [spec.name for spec in self.layers]
        if len(set(names)) != len(names):
            raise ConfigError(f"Topology {self.name!r} has duplicate layer names: {names}")
        for prev, nxt in zip(self.layers, self.layers[1:]):
            if prev.out_features != nxt.in_features:
                raise ConfigError(
                    f"Layer {prev.name!r} outputs {prev.out_features} but "
                    f"{nxt.name!r} expects {nxt.in_features}"
                )

    @property
    def input_size(self) -> int:
        return self.layers[0].in_features

    @property
    def output_size(self) -> int:
        return self.layers[-1].out_features

    def num_parameters(self) -> int:
        return sum(
            spec.in_features * spec.out_features + (spec.out_features if spec.bias else 0)
            for spec in self.layers
        )


@dataclass(frozen=True)
class Layer:
    """Weight and optional bias of one layer."""
    weight: torch.Tensor
    bias: Optional[torch.Tensor] = None

    def shapes(self) -> Tuple[Tuple[int, ...], Optional[Tuple[int, ...]]]:
        bias_shape = tuple(self.bias.shape) if self.bias is not None else None
        return tuple(self.weight.shape), bias_shape

    def tensors(self) -> List[torch.Tensor]:
        if self.bias is None:
            return [self.weight]
        return [self.weight, self.bias]


class Genome:
    """
    Full parameter set of one candidate controller.

    Args:
        layers: Ordered mapping of layer name to Layer
        topology_name: Name of the topology the genome was built for
    """

    def __init__(self, layers: Dict[str, Layer], topology_name: str):
        self._layers = OrderedDict(layers)
        self.topology_name = topology_name

    @classmethod
    def random(
        cls,
        topology: Topology,
        generator: Optional[torch.Generator] = None,
    ) -> 'Genome':
        """Create a genome with every weight and bias drawn from N(0, 1)."""
        layers = OrderedDict()
        for spec in topology.layers:
            weight = torch.randn(spec.out_features, spec.in_features, generator=generator)
            bias = torch.randn(spec.out_features, generator=generator) if spec.bias else None
            layers[spec.name] = Layer(weight, bias)
        return cls(layers, topology.name)

    @property
    def layer_names(self) -> List[str]:
        return list(self._layers.keys())

    def layer(self, name: str) -> Layer:
        return self._layers[name]

    def items(self) -> Iterator[Tuple[str, Layer]]:
        return iter(self._layers.items())

    def __len__(self) -> int:
        return len(self._layers)

    def __contains__(self, name: str) -> bool:
        return name in self._layers

    def shapes(self) -> Dict[str, Tuple[Tuple[int, ...], Optional[Tuple[int, ...]]]]:
        """Layer name -> (weight shape, bias shape or None)."""
        return {name: layer.shapes() for name, layer in self._layers.items()}

    def num_parameters(self) -> int:
        return sum(t.numel() for layer in self._layers.values() for t in layer.tensors())

    def clone(self) -> 'Genome':
        """Create a deep copy."""
        layers = OrderedDict(
            (name, Layer(
                layer.weight.clone(),
                layer.bias.clone() if layer.bias is not None else None,
            ))
            for name, layer in self._layers.items()
        )
        return Genome(layers, self.topology_name)

    def allclose(self, other: 'Genome', atol: float = 0.0) -> bool:
        """True if both genomes have the same shapes and (near) identical values."""
        if not shapes_match(self, other) or len(self) != len(other):
            return False
        for name, layer in self._layers.items():
            theirs = other.layer(name)
            if not torch.allclose(layer.weight, theirs.weight, rtol=0.0, atol=atol):
                return False
            if layer.bias is not None and not torch.allclose(
                layer.bias, theirs.bias, rtol=0.0, atol=atol
            ):
                return False
        return True

    def state_dict(self) -> dict:
        """Get state dictionary for saving."""
        return {
            'topology': self.topology_name,
            'layers': [
                {'name': name, 'weight': layer.weight, 'bias': layer.bias}
                for name, layer in self._layers.items()
            ],
        }

    @classmethod
    def from_state_dict(cls, state: dict) -> 'Genome':
        """Rebuild a genome from state_dict() output."""
        layers = OrderedDict()
        for entry in state['layers']:
            bias = entry['bias']
            layers[entry['name']] = Layer(
                entry['weight'].detach().to(torch.float32),
                bias.detach().to(torch.float32) if bias is not None else None,
            )
        return cls(layers, state['topology'])

    def __repr__(self) -> str:
        shapes = ", ".join(
            f"{name}={list(layer.weight.shape)}" for name, layer in self._layers.items()
        )
        return f"Genome({self.topology_name}: {shapes})"


def shapes_match(a: Genome, b: Genome) -> bool:
    """True iff every layer of `a` is present in `b` with identical weight and bias shapes."""
    for name, layer in a.items():
        if name not in b:
            return False
        if layer.shapes() != b.layer(name).shapes():
            return False
    return True


def ensure_shapes_match(a: Genome, b: Genome, operator: Optional[str] = None):
    """Raise ShapeMismatch naming the first offending layer."""
    for name, layer in a.items():
        if name not in b:
            raise ShapeMismatch(f"layer {name!r} missing from second genome", operator=operator)
        theirs = b.layer(name).shapes()
        if layer.shapes() != theirs:
            raise ShapeMismatch(
                f"layer {name!r} shapes differ: {layer.shapes()} vs {theirs}",
                operator=operator,
            )


def ensure_topology(genome: Genome, topology: Topology, operator: Optional[str] = None):
    """Raise ShapeMismatch unless the genome has exactly the topology's layers and shapes."""
    expected = OrderedDict(
        (spec.name, ((spec.out_features, spec.in_features), (spec.out_features,) if spec.bias else None))
        for spec in topology.layers
    )
    if genome.layer_names != list(expected):
        raise ShapeMismatch(
            f"layers {genome.layer_names} do not match {topology.name} layers {list(expected)}",
            operator=operator,
        )
    for name, layer in genome.items():
        if layer.shapes() != expected[name]:
            raise ShapeMismatch(
                f"layer {name!r} shapes {layer.shapes()} do not match {topology.name} {expected[name]}",
                operator=operator,
            )


def max_amplitude(genome: Genome) -> float:
    """
    Largest absolute value across every weight and bias entry.

    Every layer must carry a bias; a missing one means the genome was not
    built by this engine.
    """
    if len(genome) == 0:
        raise InvariantViolation("cannot take max amplitude of an empty genome")

    amplitude = 0.0
    for name, layer in genome.items():
        if layer.bias is None:
            raise InvariantViolation(f"layer {name!r} has no bias")
        amplitude = max(
            amplitude,
            layer.weight.abs().max().item(),
            layer.bias.abs().max().item(),
        )
    return amplitude
