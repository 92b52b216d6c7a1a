"""
Ordinary least squares over (x, y) points
"""
from typing import NamedTuple, Sequence, Tuple

import numpy as np


class RegressionResult(NamedTuple):
    slope: float
    intercept: float
    r_squared: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def linear_regression(points: Sequence[Tuple[float, float]]) -> RegressionResult:
    """
    Fit y = slope * x + intercept

    Fewer than two points gives all zeros. When every x is the same the
    slope is 0 and the intercept is the mean of y. r_squared is 0 when y
    has no variance.
    """
    if len(points) < 2:
        return RegressionResult(0.0, 0.0, 0.0)

    data = np.asarray(points, dtype=float)
    x, y = data[:, 0], data[:, 1]
    n = len(data)

    denominator = n * np.sum(x * x) - np.sum(x) ** 2
    if denominator == 0:
        return RegressionResult(0.0, float(np.mean(y)), 0.0)

    slope = (n * np.sum(x * y) - np.sum(x) * np.sum(y)) / denominator
    intercept = (np.sum(y) - slope * np.sum(x)) / n

    ss_res = np.sum((y - (slope * x + intercept)) ** 2)
    ss_tot = np.sum((y - np.mean(y)) ** 2)
    r_squared = 0.0 if ss_tot == 0 else 1 - ss_res / ss_tot

    return RegressionResult(float(slope), float(intercept), float(r_squared))
