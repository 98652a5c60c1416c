"""
Reproduction operators.

All operators are pure: they read their parent genomes and return a new
Genome. Every crossover is followed by a jiggle with the same sigma, so
"crossover" here always means crossover then mutate.

- jiggle: Gaussian noise on every weight and bias
- combine: weights from the mother, biases from the father
- interleave: per-entry coin flip between parents (fresh mask per tensor)
- average: entrywise mean of both parents
- layer_swap: whole layers alternate between parents

The *_layers variants do the recombination without the jiggle.
"""

import functools
import math
import random
from collections import OrderedDict
from typing import Callable, Dict, Optional, Tuple

import torch

from .errors import InvariantViolation
from .genome import Genome, Layer, ensure_shapes_match

Operator = Callable[[Genome, Genome, float, Optional[torch.Generator]], Genome]

# Relative weights for offspring production (sum 15)
OPERATOR_WEIGHTS: Dict[str, int] = OrderedDict([
    ('interleave', 5),
    ('average', 4),
    ('combine', 1),
    ('layer_swap', 1),
    ('jiggle_mother', 2),
    ('jiggle_father', 2),
])


def _check_sigma(sigma: float):
    if not math.isfinite(sigma) or sigma < 0:
        raise InvariantViolation(f"mutation sigma must be finite and >= 0, got {sigma}", operator="jiggle")


def _noisy(t: torch.Tensor, sigma: float, generator: Optional[torch.Generator]) -> torch.Tensor:
    if sigma == 0:
        return t.clone()
    return t + torch.randn(t.shape, generator=generator, dtype=t.dtype) * sigma


def _mix(a: torch.Tensor, b: torch.Tensor, generator: Optional[torch.Generator]) -> torch.Tensor:
    # New mask for every tensor
    mask = torch.rand(a.shape, generator=generator) < 0.5
    return torch.where(mask, a, b)


def jiggle(genome: Genome, sigma: float, generator: Optional[torch.Generator] = None) -> Genome:
    """
    Add N(0, sigma) noise to every weight and bias entry.

    Args:
        genome: Source genome (left untouched)
        sigma: Standard deviation of the noise
        generator: Optional torch generator for reproducible noise

    Returns:
        New genome with identical layer names and shapes
    """
    _check_sigma(sigma)
    layers = OrderedDict()
    for name, layer in genome.items():
        bias = _noisy(layer.bias, sigma, generator) if layer.bias is not None else None
        layers[name] = Layer(_noisy(layer.weight, sigma, generator), bias)
    return Genome(layers, genome.topology_name)


def combine_layers(a: Genome, b: Genome) -> Genome:
    """Per layer: weights from `a`, bias from `b`."""
    ensure_shapes_match(a, b, operator='combine')
    layers = OrderedDict()
    for name, layer in a.items():
        theirs = b.layer(name)
        bias = theirs.bias.clone() if theirs.bias is not None else None
        layers[name] = Layer(layer.weight.clone(), bias)
    return Genome(layers, a.topology_name)


def interleave_layers(
    a: Genome,
    b: Genome,
    generator: Optional[torch.Generator] = None,
    interleave_bias: bool = True,
) -> Genome:
    """
    Per entry, take `a`'s or `b`'s value with probability 0.5.

    Each tensor gets its own mask. With interleave_bias=False the bias is
    copied from `b` in full.
    """
    ensure_shapes_match(a, b, operator='interleave')
    layers = OrderedDict()
    for name, layer in a.items():
        theirs = b.layer(name)
        weight = _mix(layer.weight, theirs.weight, generator)
        if layer.bias is None:
            bias = None
        elif interleave_bias:
            bias = _mix(layer.bias, theirs.bias, generator)
        else:
            bias = theirs.bias.clone()
        layers[name] = Layer(weight, bias)
    return Genome(layers, a.topology_name)


def average_layers(a: Genome, b: Genome) -> Genome:
    """Entrywise mean of weights and biases."""
    ensure_shapes_match(a, b, operator='average')
    layers = OrderedDict()
    for name, layer in a.items():
        theirs = b.layer(name)
        bias = (layer.bias + theirs.bias) / 2 if layer.bias is not None else None
        layers[name] = Layer((layer.weight + theirs.weight) / 2, bias)
    return Genome(layers, a.topology_name)


def swap_layers(a: Genome, b: Genome) -> Genome:
    """Even-indexed layers from `a`, odd-indexed layers from `b`."""
    ensure_shapes_match(a, b, operator='layer_swap')
    layers = OrderedDict()
    for i, name in enumerate(a.layer_names):
        source = a.layer(name) if i % 2 == 0 else b.layer(name)
        bias = source.bias.clone() if source.bias is not None else None
        layers[name] = Layer(source.weight.clone(), bias)
    return Genome(layers, a.topology_name)


def combine(a: Genome, b: Genome, sigma: float, generator: Optional[torch.Generator] = None) -> Genome:
    return jiggle(combine_layers(a, b), sigma, generator)


def interleave(
    a: Genome,
    b: Genome,
    sigma: float,
    generator: Optional[torch.Generator] = None,
    interleave_bias: bool = True,
) -> Genome:
    return jiggle(interleave_layers(a, b, generator, interleave_bias), sigma, generator)


def average(a: Genome, b: Genome, sigma: float, generator: Optional[torch.Generator] = None) -> Genome:
    return jiggle(average_layers(a, b), sigma, generator)


def layer_swap(a: Genome, b: Genome, sigma: float, generator: Optional[torch.Generator] = None) -> Genome:
    return jiggle(swap_layers(a, b), sigma, generator)


def jiggle_mother(mother: Genome, father: Genome, sigma: float,
                  generator: Optional[torch.Generator] = None) -> Genome:
    return jiggle(mother, sigma, generator)


def jiggle_father(mother: Genome, father: Genome, sigma: float,
                  generator: Optional[torch.Generator] = None) -> Genome:
    return jiggle(father, sigma, generator)


def operator_table(interleave_bias: bool = True) -> Dict[str, Operator]:
    """Map operator names (keys of OPERATOR_WEIGHTS) to reproduction functions."""
    return {
        'interleave': functools.partial(interleave, interleave_bias=interleave_bias),
        'average': average,
        'combine': combine,
        'layer_swap': layer_swap,
        'jiggle_mother': jiggle_mother,
        'jiggle_father': jiggle_father,
    }


def choose_operator(rng: random.Random, weights: Optional[Dict[str, int]] = None) -> str:
    """Weighted random choice of an operator name."""
    weights = weights or OPERATOR_WEIGHTS
    names = list(weights.keys())
    return rng.choices(names, weights=[weights[n] for n in names], k=1)[0]


def make_offspring(
    mother: Genome,
    father: Genome,
    sigma: float,
    rng: random.Random,
    generator: Optional[torch.Generator] = None,
    weights: Optional[Dict[str, int]] = None,
    operators: Optional[Dict[str, Operator]] = None,
) -> Genome:
    """
    Produce one child using a weighted random reproduction mode.

    Args:
        mother: First parent
        father: Second parent
        sigma: Mutation std applied after recombination
        rng: Source of the operator choice
        generator: Torch generator for masks and noise
        weights: Operator name -> relative weight (default OPERATOR_WEIGHTS)
        operators: Operator name -> function (default operator_table())

    Returns:
        The child genome
    """
    ensure_shapes_match(mother, father, operator='make_offspring')
    operators = operators or operator_table()
    name = choose_operator(rng, weights)
    return operators[name](mother, father, sigma, generator)


def make_distinct(count: int, rng: random.Random) -> Tuple[int, int]:
    """Pick two different indices in [0, count), resampling the second until it differs."""
    if count < 2:
        raise InvariantViolation(f"need at least 2 candidates to pick distinct parents, got {count}")
    first = rng.randrange(count)
    while True:
        second = rng.randrange(count)
        if second != first:
            return first, second
