"""Polynomial-reference kinematic MPC for vehicle trajectory control."""

__version__ = '0.1.0'
