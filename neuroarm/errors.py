"""
Exception types for the evolution engine.

- InvariantViolation: fatal, the genome algebra is broken and the run must stop
- ShapeMismatch: two genomes expected to share a topology do not
- CheckpointError: saving or loading a record failed
- ConfigError: invalid run configuration
"""

from typing import Optional


class NeuroArmError(Exception):
    """Base class for all engine errors."""


class InvariantViolation(NeuroArmError):
    """
    A fatal condition. Carries optional island/tick/operator context so
    the message identifies where the run broke.
    """

    def __init__(
        self,
        message: str,
        island: Optional[int] = None,
        tick: Optional[int] = None,
        operator: Optional[str] = None,
    ):
        self.message = message
        self.island = island
        self.tick = tick
        self.operator = operator
        super().__init__(self._render())

    def _render(self) -> str:
        context = []
        if self.tick is not None:
            context.append(f"tick={self.tick}")
        if self.island is not None:
            context.append(f"island={self.island}")
        if self.operator is not None:
            context.append(f"operator={self.operator}")
        if not context:
            return self.message
        return f"[{', '.join(context)}] {self.message}"

    def with_context(
        self,
        island: Optional[int] = None,
        tick: Optional[int] = None,
    ) -> 'InvariantViolation':
        """Fill in island/tick if not already set and refresh the message."""
        if self.island is None:
            self.island = island
        if self.tick is None:
            self.tick = tick
        self.args = (self._render(),)
        return self

    def __str__(self) -> str:
        return self._render()


class ShapeMismatch(InvariantViolation):
    """Raised when two genomes do not share layer names and shapes."""


class CheckpointError(NeuroArmError):
    """Raised when a checkpoint record cannot be written or read."""


class ConfigError(NeuroArmError, ValueError):
    """Raised for invalid configuration values."""
