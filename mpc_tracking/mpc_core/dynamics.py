"""
Kinematic bicycle model with reference-tracking error states.

State: [x, y, psi, v, cte, epsi]
  x, y  - position (vehicle frame at solve time)
  psi   - heading
  v     - velocity
  cte   - cross-track error
  epsi  - heading error

Control: [delta, a]
  delta - steering angle
  a     - acceleration

Discrete (forward Euler) update, f = reference polynomial:
    x'    = x + v*cos(psi)*dt
    y'    = y + v*sin(psi)*dt
    psi'  = psi + v/Lf*delta*dt
    v'    = v + a*dt
    cte'  = (f(x) - y) + v*sin(epsi)*dt
    epsi' = (psi - atan(f'(x))) + v/Lf*delta*dt

The same formulas serve numeric evaluation (floats / numpy) and CasADi
symbolic lifting; trig dispatch happens on operand type.
"""

import numpy as np
from typing import Sequence

from .polynomial import ReferencePolynomial, cos, sin

# This is the length from front axle to CoG that reproduces the turning
# radius measured in the simulator at constant steering and speed.
DEFAULT_LF = 2.67


class KinematicModel:
    """Discrete-time kinematic bicycle model."""

    def __init__(self, lf: float = DEFAULT_LF, dt: float = 0.05):
        self.lf = lf
        self.dt = dt
        self.nx = 6  # [x, y, psi, v, cte, epsi]
        self.nu = 2  # [delta, a]

    def next_state(self, state: Sequence, actuation: Sequence,
                   reference: ReferencePolynomial) -> tuple:
        """Right-hand side of the update for one timestep."""
        x, y, psi, v, cte, epsi = (state[i] for i in range(self.nx))
        delta, a = actuation[0], actuation[1]
        dt = self.dt

        f0 = reference(x)
        psides0 = reference.desired_heading(x)

        return (
            x + v * cos(psi) * dt,
            y + v * sin(psi) * dt,
            psi + v / self.lf * delta * dt,
            v + a * dt,
            (f0 - y) + v * sin(epsi) * dt,
            (psi - psides0) + v / self.lf * delta * dt,
        )

    def residuals(self, next_state: Sequence, state: Sequence, actuation: Sequence,
                  reference: ReferencePolynomial) -> list:
        """next_state - model(state, actuation); zero when the dynamics hold."""
        rhs = self.next_state(state, actuation, reference)
        return [next_state[i] - rhs[i] for i in range(self.nx)]

    def step(self, state, actuation, reference: ReferencePolynomial) -> np.ndarray:
        """Integrate one step numerically."""
        state = np.asarray(state, dtype=np.float64)
        actuation = np.asarray(actuation, dtype=np.float64)
        return np.array(self.next_state(state, actuation, reference), dtype=np.float64)

    def simulate(self, x0, actuations, reference: ReferencePolynomial) -> np.ndarray:
        """
        Roll the model forward from x0.

        Args:
            x0: Initial state [nx]
            actuations: Actuation sequence [K, nu]
            reference: Reference polynomial for the error states

        Returns:
            States trajectory [K+1, nx]
        """
        actuations = np.asarray(actuations, dtype=np.float64).reshape(-1, self.nu)
        K = actuations.shape[0]
        states = np.zeros((K + 1, self.nx))
        states[0] = x0
        for k in range(K):
            states[k + 1] = self.step(states[k], actuations[k], reference)
        return states
