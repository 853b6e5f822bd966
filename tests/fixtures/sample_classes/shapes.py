__all__ = ["Circle"]

import math


class _Helper:
    pass


class Square:
    def __init__(self, side: float):
        self.side = side


class Circle:
    def __init__(self, radius: float):
        self.radius = radius

    def area(self):
        return math.pi * self.radius**2
