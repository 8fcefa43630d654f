"""
Flat decision-vector layout for the MPC problem.

The NLP solver sees every state and actuator over the horizon as a single
vector. Blocks are contiguous, one per variable:

    [x_0 .. x_{N-1}, y_0 .., psi_0 .., v_0 .., cte_0 .., epsi_0 ..,
     delta_0 .. delta_{N-2}, a_0 .. a_{N-2}]

Block offsets are cumulative sums of the preceding block lengths, so
n_vars = 6*N + 2*(N-1) and there is one equality constraint per state
variable per timestep (6*N rows).
"""

import numpy as np
from typing import Dict, List, Tuple

from .errors import InvalidInputError

STATE_FIELDS = ('x', 'y', 'psi', 'v', 'cte', 'epsi')
ACTUATOR_FIELDS = ('delta', 'a')


class VariableLayout:
    """Index arithmetic between logical (field, t) pairs and the flat vector."""

    def __init__(self, horizon: int):
        if int(horizon) != horizon or horizon < 2:
            raise InvalidInputError(f"Horizon must be an integer >= 2, got {horizon}")
        self.horizon = int(horizon)

        N = self.horizon
        self._lengths: Dict[str, int] = {}
        self._starts: Dict[str, int] = {}
        offset = 0
        for name in STATE_FIELDS + ACTUATOR_FIELDS:
            length = N if name in STATE_FIELDS else N - 1
            self._starts[name] = offset
            self._lengths[name] = length
            offset += length

        self.n_vars = offset
        self.n_constraints = len(STATE_FIELDS) * N

        self.x_start = self._starts['x']
        self.y_start = self._starts['y']
        self.psi_start = self._starts['psi']
        self.v_start = self._starts['v']
        self.cte_start = self._starts['cte']
        self.epsi_start = self._starts['epsi']
        self.delta_start = self._starts['delta']
        self.a_start = self._starts['a']

    def blocks(self) -> List[Tuple[str, int, int]]:
        """(name, start, length) for every block, in vector order."""
        return [(name, self._starts[name], self._lengths[name])
                for name in STATE_FIELDS + ACTUATOR_FIELDS]

    def start(self, field: str) -> int:
        if field not in self._starts:
            raise KeyError(f"Unknown variable field '{field}'")
        return self._starts[field]

    def length(self, field: str) -> int:
        if field not in self._lengths:
            raise KeyError(f"Unknown variable field '{field}'")
        return self._lengths[field]

    def index(self, field: str, t: int) -> int:
        """Flat index of `field` at timestep t."""
        length = self.length(field)
        if t < 0 or t >= length:
            raise IndexError(
                f"Timestep {t} out of range for '{field}' (valid: 0..{length - 1})")
        return self._starts[field] + t

    def value(self, vars, field: str, t: int):
        return vars[self.index(field, t)]

    def block(self, vars, field: str):
        start = self.start(field)
        return vars[start:start + self._lengths[field]]

    def pack(self, states: np.ndarray, actuations: np.ndarray) -> np.ndarray:
        """
        Build a flat vector from per-timestep arrays.

        Args:
            states: [N, 6] rows of (x, y, psi, v, cte, epsi)
            actuations: [N-1, 2] rows of (delta, a)
        """
        states = np.asarray(states, dtype=np.float64)
        actuations = np.asarray(actuations, dtype=np.float64)
        N = self.horizon
        if states.shape != (N, len(STATE_FIELDS)):
            raise InvalidInputError(
                f"States must have shape ({N}, {len(STATE_FIELDS)}), got {states.shape}")
        if actuations.shape != (N - 1, len(ACTUATOR_FIELDS)):
            raise InvalidInputError(
                f"Actuations must have shape ({N - 1}, {len(ACTUATOR_FIELDS)}), "
                f"got {actuations.shape}")

        # Column-major flattening matches the block layout
        return np.concatenate([states.T.ravel(), actuations.T.ravel()])

    def unpack(self, vars) -> Tuple[np.ndarray, np.ndarray]:
        """Inverse of pack(): returns ([N, 6] states, [N-1, 2] actuations)."""
        vars = np.asarray(vars, dtype=np.float64).ravel()
        if vars.shape[0] != self.n_vars:
            raise InvalidInputError(
                f"Flat vector must have {self.n_vars} elements, got {vars.shape[0]}")
        N = self.horizon
        n_state = len(STATE_FIELDS) * N
        states = vars[:n_state].reshape(len(STATE_FIELDS), N).T
        actuations = vars[n_state:].reshape(len(ACTUATOR_FIELDS), N - 1).T
        return states, actuations
