"""
Bounds, initial guess and equality constraints for the MPC problem.

Constraint rows share the state-block layout of the decision vector: row
`block_start + 0` is the identity on that variable at t=0 (pinned to the
measured state through its bounds), rows `block_start + t` for t >= 1 are
the dynamics residuals between t-1 and t (pinned to zero).
"""

import numpy as np
from typing import Optional, Tuple

from .dynamics import KinematicModel
from .errors import InvalidInputError
from .layout import VariableLayout, STATE_FIELDS
from .polynomial import ReferencePolynomial


class ConstraintBuilder:
    """Builds the per-solve bound vectors and constraint residuals."""

    def __init__(self, layout: VariableLayout, model: KinematicModel, config):
        self.layout = layout
        self.model = model
        self.config = config

    def variable_bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """(lbx, ubx): states free, steering and acceleration box-bounded."""
        lay = self.layout
        cfg = self.config

        lbx = np.full(lay.n_vars, -np.inf)
        ubx = np.full(lay.n_vars, np.inf)

        lbx[lay.delta_start:lay.a_start] = -cfg.max_steering
        ubx[lay.delta_start:lay.a_start] = cfg.max_steering

        lbx[lay.a_start:] = -cfg.max_acceleration
        ubx[lay.a_start:] = cfg.max_acceleration

        return lbx, ubx

    def constraint_bounds(self, state) -> Tuple[np.ndarray, np.ndarray]:
        """(lbg, ubg): zero everywhere except the initial-state rows."""
        lay = self.layout
        state = np.asarray(state, dtype=np.float64)

        lbg = np.zeros(lay.n_constraints)
        ubg = np.zeros(lay.n_constraints)
        for i, name in enumerate(STATE_FIELDS):
            row = lay.start(name)
            lbg[row] = state[i]
            ubg[row] = state[i]
        return lbg, ubg

    def initial_guess(self, warm_start: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Starting point for the solver.

        Cold start is all zeros. A previous solution is shifted one step
        forward per block, repeating the last element.
        """
        lay = self.layout
        if warm_start is None:
            return np.zeros(lay.n_vars)

        warm_start = np.asarray(warm_start, dtype=np.float64).ravel()
        if warm_start.shape[0] != lay.n_vars:
            raise InvalidInputError(
                f"Warm start must have {lay.n_vars} elements, got {warm_start.shape[0]}")

        guess = np.empty(lay.n_vars)
        for _, start, length in lay.blocks():
            block = warm_start[start:start + length]
            guess[start:start + length - 1] = block[1:]
            guess[start + length - 1] = block[-1]
        return guess

    def constraints(self, vars, reference: ReferencePolynomial) -> list:
        """Residual vector of length 6*N, in row order."""
        lay = self.layout
        N = lay.horizon
        nx = len(STATE_FIELDS)
        starts = [lay.start(name) for name in STATE_FIELDS]

        g = [None] * lay.n_constraints

        for i in range(nx):
            g[starts[i]] = vars[starts[i]]

        for t in range(1, N):
            state0 = [vars[s + t - 1] for s in starts]
            state1 = [vars[s + t] for s in starts]
            actuation0 = (vars[lay.delta_start + t - 1], vars[lay.a_start + t - 1])

            residuals = self.model.residuals(state1, state0, actuation0, reference)
            for i in range(nx):
                g[starts[i] + t] = residuals[i]

        return g
