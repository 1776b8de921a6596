"""
Tabulated functions interpolated by a natural cubic spline.

A tabulated function is defined by M >= 2 samples at uniformly spaced
points between min and max. Inside the domain it is interpolated by a
natural cubic spline (zero second derivative at both ends); outside the
domain the function and its derivative are zero.
"""
from typing import Sequence, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.linalg import solve_banded

Scalar = Union[float, NDArray[np.floating]]


class TabulatedFunction:
    """
    Natural cubic spline through uniformly spaced samples.

    The spline coefficients (second derivatives at the knots) are built
    once from the samples. Evaluation locates the bracketing interval by
    scaled index, so each lookup is O(1).

    Attributes:
        values: (M,) sample values.
        min: Independent variable at the first sample.
        max: Independent variable at the last sample.

    Example:
        >>> x = np.linspace(0.0, 10.0, 101)
        >>> fn = TabulatedFunction(x ** 2, 0.0, 10.0)
        >>> value, slope = fn.evaluate(2.0)
    """

    def __init__(self, values: Sequence[float], min: float, max: float) -> None:
        """
        Initialize and build the spline.

        Args:
            values: Samples of f at M uniformly spaced points.
            min: Independent variable of the first sample.
            max: Independent variable of the last sample.

        Raises:
            ValueError: If fewer than 2 samples or min >= max.
        """
        self.set_values(values, min, max)

    @staticmethod
    def _validate(values: NDArray[np.floating], min: float, max: float) -> None:
        if values.ndim != 1:
            raise ValueError(
                f"Tabulated values must be a 1D sequence, got shape {values.shape}"
            )
        if len(values) < 2:
            raise ValueError(
                f"Tabulated function needs at least 2 values, got {len(values)}"
            )
        if not min < max:
            raise ValueError(f"min must be less than max, got min={min}, max={max}")

    def set_values(self, values: Sequence[float], min: float, max: float) -> None:
        """
        Replace the samples and rebuild the spline in place.

        Compiled expressions that hold this object see the new data on
        their next evaluation.
        """
        samples = np.array(values, dtype=np.float64)
        min = float(min)
        max = float(max)
        self._validate(samples, min, max)

        spacing = (max - min) / (len(samples) - 1)
        second = self.build(samples, spacing)
        self._table = (samples, second, min, max, spacing)

    @staticmethod
    def build(samples: NDArray[np.floating], spacing: float) -> NDArray[np.floating]:
        """
        Solve for the knot second derivatives of a natural cubic spline.

        For uniform spacing h the interior equations are

            M[i-1] + 4 M[i] + M[i+1] = 6 (y[i+1] - 2 y[i] + y[i-1]) / h²

        with M[0] = M[-1] = 0. The tridiagonal system is solved in O(M).

        Args:
            samples: (M,) sample values.
            spacing: Distance h between consecutive samples.

        Returns:
            (M,) second derivatives at the knots.
        """
        n = len(samples)
        second = np.zeros(n)
        if n < 3:
            return second

        interior = n - 2
        rhs = 6.0 * (samples[2:] - 2.0 * samples[1:-1] + samples[:-2]) / spacing ** 2
        banded = np.empty((3, interior))
        banded[0, :] = 1.0
        banded[1, :] = 4.0
        banded[2, :] = 1.0
        second[1:-1] = solve_banded((1, 1), banded, rhs)
        return second

    @property
    def values(self) -> NDArray[np.floating]:
        return self._table[0].copy()

    @property
    def min(self) -> float:
        return self._table[2]

    @property
    def max(self) -> float:
        return self._table[3]

    def evaluate(self, x: ArrayLike) -> Tuple[Scalar, Scalar]:
        """
        Evaluate the spline and its first derivative.

        Args:
            x: Scalar or array of points.

        Returns:
            Tuple of (value, derivative), each the shape of x. Both are
            exactly zero outside [min, max].
        """
        samples, second, lo, hi, spacing = self._table
        x_arr = np.asarray(x, dtype=np.float64)
        inside = (x_arr >= lo) & (x_arr <= hi)

        last = len(samples) - 1
        t = np.where(inside, (x_arr - lo) / spacing, 0.0)
        t = np.clip(t, 0.0, float(last))
        index = np.minimum(t.astype(np.intp), last - 1)

        b = t - index
        a = 1.0 - b
        y0 = samples[index]
        y1 = samples[index + 1]
        m0 = second[index]
        m1 = second[index + 1]

        h = spacing
        value = a * y0 + b * y1 + ((a ** 3 - a) * m0 + (b ** 3 - b) * m1) * h * h / 6.0
        slope = (y1 - y0) / h + ((1.0 - 3.0 * a * a) * m0 + (3.0 * b * b - 1.0) * m1) * h / 6.0

        value = np.where(inside, value, 0.0)
        slope = np.where(inside, slope, 0.0)
        if x_arr.ndim == 0:
            return float(value), float(slope)
        return value, slope

    def __call__(self, x: ArrayLike) -> Scalar:
        return self.evaluate(x)[0]
