"""Stepper-motor turntable control.

Angles are degrees in [0, 360). The turntable tracks its own position; the
motor driver only turns steps into motion.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Protocol

from turnscan.utils import get_logger

logger = get_logger("capture.turntable")


@dataclass
class MotorPosition:
    """Current turntable position."""
    angle: float = 0.0
    step: int = 0

    def to_dict(self) -> dict:
        return {"angle": self.angle, "step": self.step}


@dataclass
class MotorSettings:
    """Stepper motor configuration."""
    steps_per_rotation: int = 200
    step_size: float = 1.8  # degrees
    max_speed: float = 10.0
    acceleration: float = 2.0
    scan_steps: int = 24
    pause_between_steps: float = 0.5  # seconds
    step_seconds: float = 0.02
    settle_seconds: float = 0.3

    @property
    def degrees_per_step(self) -> float:
        return 360.0 / self.steps_per_rotation


class MotorDriver(Protocol):
    """Moves the physical motor."""

    async def step(self, steps: int, step_seconds: float) -> None:
        ...


@dataclass
class SimulatedMotorDriver:
    """Motor driver that only waits, proportional to the move."""
    moves: List[int] = field(default_factory=list)
    realtime: bool = True

    async def step(self, steps: int, step_seconds: float) -> None:
        self.moves.append(steps)
        if self.realtime and steps:
            await asyncio.sleep(abs(steps) * step_seconds)


class Turntable:
    """Turntable driven by a stepper motor."""

    def __init__(
        self,
        settings: Optional[MotorSettings] = None,
        driver: Optional[MotorDriver] = None,
    ):
        self.settings = settings or MotorSettings()
        self.driver = driver or SimulatedMotorDriver()
        self.position = MotorPosition()

    @property
    def angle(self) -> float:
        return self.position.angle

    async def move_to(self, angle: float) -> MotorPosition:
        """
        Move to an absolute angle.

        Args:
            angle: Target angle in degrees (wrapped into [0, 360))

        Returns:
            New position
        """
        target = angle % 360.0
        start = self.position
        steps = round((target - start.angle) / self.settings.degrees_per_step)

        logger.debug(f"Moving turntable from {start.angle:.1f} to {target:.1f} degrees ({steps} steps)")
        await self.driver.step(steps, self.settings.step_seconds)

        self.position = MotorPosition(angle=target, step=start.step + steps)
        return self.position

    async def rotate_by(self, delta: float) -> MotorPosition:
        """Rotate relative to the current angle."""
        return await self.move_to(self.position.angle + delta)

    async def home(self) -> MotorPosition:
        """Return to 0 degrees."""
        return await self.move_to(0.0)

    async def settle(self) -> None:
        if self.settings.settle_seconds > 0:
            await asyncio.sleep(self.settings.settle_seconds)

    def scan_angles(self, steps: Optional[int] = None) -> Iterator[float]:
        """Angles visited by a full rotation in ``steps`` equal stops."""
        steps = steps or self.settings.scan_steps
        if steps < 1:
            raise ValueError("A scan needs at least one step")
        increment = 360.0 / steps
        for i in range(steps):
            yield i * increment
