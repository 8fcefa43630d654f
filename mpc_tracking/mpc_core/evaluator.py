"""
Problem evaluator handed to the NLP solver.

Given the flat decision vector it returns the scalar cost and the
constraint residual vector. A numpy vector yields a float and a numpy
array; a CasADi symbol yields an SX expression and an SX column, which is
how the IPOPT adapter obtains exact sparse derivatives.
"""

import numpy as np
import casadi as ca

from .constraints import ConstraintBuilder
from .errors import InvalidInputError
from .objective import ObjectiveFunction
from .polynomial import ReferencePolynomial, is_symbolic


class ProblemEvaluator:
    """Composes the objective and constraint residuals for one solve."""

    def __init__(self, objective: ObjectiveFunction, constraint_builder: ConstraintBuilder,
                 reference: ReferencePolynomial):
        self.layout = objective.layout
        self._objective = objective
        self._constraints = constraint_builder
        self.reference = reference

    @property
    def n_vars(self) -> int:
        return self.layout.n_vars

    @property
    def n_constraints(self) -> int:
        return self.layout.n_constraints

    def objective(self, vars):
        if is_symbolic(vars):
            return self._objective(vars)
        return float(self._objective(self._as_numeric(vars)))

    def constraints(self, vars):
        if is_symbolic(vars):
            return ca.vertcat(*self._constraints.constraints(vars, self.reference))
        g = self._constraints.constraints(self._as_numeric(vars), self.reference)
        return np.array(g, dtype=np.float64)

    def __call__(self, vars):
        return self.objective(vars), self.constraints(vars)

    def _as_numeric(self, vars) -> np.ndarray:
        vars = np.asarray(vars, dtype=np.float64).ravel()
        if vars.shape[0] != self.n_vars:
            raise InvalidInputError(
                f"Expected a vector of {self.n_vars} variables, got {vars.shape[0]}")
        return vars
