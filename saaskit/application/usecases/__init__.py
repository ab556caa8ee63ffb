"""Casos de uso compuestos."""

from .signup import SignupResult, SignupUseCase

__all__ = ["SignupUseCase", "SignupResult"]
