from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from panda3d.core import LVector3d


@dataclass(frozen=True)
class AABB:
    minimum: LVector3d
    maximum: LVector3d

    @classmethod
    def from_points(cls, points: Iterable[tuple[float, float, float]]) -> AABB:
        """Smallest box containing *points*.  Raises ValueError when empty."""
        it = iter(points)
        try:
            x, y, z = next(it)
        except StopIteration:
            raise ValueError("AABB.from_points() needs at least one point") from None
        lo = [float(x), float(y), float(z)]
        hi = list(lo)
        for p in it:
            for i in range(3):
                v = float(p[i])
                if v < lo[i]:
                    lo[i] = v
                elif v > hi[i]:
                    hi[i] = v
        return cls(minimum=LVector3d(*lo), maximum=LVector3d(*hi))

    def contains(self, point: tuple[float, float, float]) -> bool:
        return all(self.minimum[i] <= float(point[i]) <= self.maximum[i] for i in range(3))

    @property
    def center(self) -> LVector3d:
        return (self.minimum + self.maximum) * 0.5

    @property
    def size(self) -> LVector3d:
        return self.maximum - self.minimum

    def to_json(self) -> dict[str, list[float]]:
        return {
            "min": [float(self.minimum.x), float(self.minimum.y), float(self.minimum.z)],
            "max": [float(self.maximum.x), float(self.maximum.y), float(self.maximum.z)],
        }

    @classmethod
    def from_json(cls, d: dict) -> AABB:
        lo = d.get("min") or [0.0, 0.0, 0.0]
        hi = d.get("max") or [0.0, 0.0, 0.0]
        return cls(minimum=LVector3d(*map(float, lo)), maximum=LVector3d(*map(float, hi)))
