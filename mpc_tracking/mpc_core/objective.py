"""
Weighted MPC cost over the horizon.

Three groups of terms:
- tracking, every t in [0, N): cte^2, epsi^2 and (v - v_ref)^2
- actuator magnitude, every t in [0, N-1): delta^2 and a^2
- actuator smoothness, every t in [0, N-2): (delta[t+1]-delta[t])^2 and
  (a[t+1]-a[t])^2

Steering weight dominates the default tuning to keep the commanded
steering gentle.
"""

from typing import Dict

from .layout import VariableLayout


class ObjectiveFunction:
    """Cost evaluator, usable on numpy vectors and CasADi symbols."""

    def __init__(self, layout: VariableLayout, config):
        self.layout = layout
        self.config = config

    def __call__(self, vars):
        terms = self._terms(vars)
        return terms['tracking'] + terms['actuator'] + terms['smoothness']

    def breakdown(self, vars) -> Dict[str, float]:
        """Per-group cost totals for a numeric vector."""
        return {name: float(value) for name, value in self._terms(vars).items()}

    def _terms(self, vars):
        cfg = self.config
        lay = self.layout
        N = lay.horizon

        tracking = 0.0
        for t in range(N):
            tracking += cfg.cte_weight * vars[lay.cte_start + t] ** 2
            tracking += cfg.epsi_weight * vars[lay.epsi_start + t] ** 2
            tracking += cfg.velocity_weight * (vars[lay.v_start + t] - cfg.reference_velocity) ** 2

        actuator = 0.0
        for t in range(N - 1):
            actuator += cfg.steering_weight * vars[lay.delta_start + t] ** 2
            actuator += cfg.acceleration_weight * vars[lay.a_start + t] ** 2

        smoothness = 0.0
        for t in range(N - 2):
            smoothness += cfg.steering_rate_weight * (
                vars[lay.delta_start + t + 1] - vars[lay.delta_start + t]) ** 2
            smoothness += cfg.acceleration_rate_weight * (
                vars[lay.a_start + t + 1] - vars[lay.a_start + t]) ** 2

        return {'tracking': tracking, 'actuator': actuator, 'smoothness': smoothness}
