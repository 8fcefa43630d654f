"""
Reference path polynomial in the vehicle frame.

The upstream path fitter supplies up to four coefficients in ascending
power order, f(x) = c0 + c1*x + c2*x^2 + c3*x^3. Evaluation works on plain
floats and on CasADi symbols so the same object feeds both the numeric
evaluator and the symbolic NLP graph.
"""

import numpy as np
import casadi as ca

from .errors import InvalidInputError

MAX_COEFFS = 4


def is_symbolic(*values) -> bool:
    """True if any operand is a CasADi symbolic expression."""
    return any(isinstance(v, (ca.SX, ca.MX)) for v in values)


def atan(value):
    if is_symbolic(value):
        return ca.atan(value)
    return np.arctan(value)


def cos(value):
    if is_symbolic(value):
        return ca.cos(value)
    return np.cos(value)


def sin(value):
    if is_symbolic(value):
        return ca.sin(value)
    return np.sin(value)


class ReferencePolynomial:
    """Cubic (or lower) reference path y = f(x)."""

    def __init__(self, coeffs):
        try:
            coeffs = np.asarray(coeffs, dtype=np.float64).ravel()
        except (TypeError, ValueError) as e:
            raise InvalidInputError(f"Reference coefficients must be numeric: {e}") from e
        if coeffs.size == 0:
            raise InvalidInputError("Reference polynomial needs at least one coefficient")
        if coeffs.size > MAX_COEFFS:
            raise InvalidInputError(
                f"Reference polynomial degree must be <= {MAX_COEFFS - 1} "
                f"({MAX_COEFFS} coefficients), got {coeffs.size} coefficients")

        self.coeffs = np.zeros(MAX_COEFFS)
        self.coeffs[:coeffs.size] = coeffs

    def __call__(self, x):
        """f(x), Horner form."""
        c0, c1, c2, c3 = (float(c) for c in self.coeffs)
        return c0 + x * (c1 + x * (c2 + x * c3))

    def derivative(self, x):
        """f'(x)."""
        _, c1, c2, c3 = (float(c) for c in self.coeffs)
        return c1 + x * (2.0 * c2 + x * 3.0 * c3)

    def desired_heading(self, x):
        """Path tangent angle atan(f'(x))."""
        return atan(self.derivative(x))

    def __repr__(self):
        return f"ReferencePolynomial({self.coeffs.tolist()})"
