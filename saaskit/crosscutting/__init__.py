"""Crosscutting: config, logging, errores y reloj."""
