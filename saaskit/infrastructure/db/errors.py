"""
===============================================================================
CRC CARD — infrastructure/db/errors.py
===============================================================================

Componente:
  Errores tipados del Pool/Conectividad

Responsabilidades:
  - Dar semántica clara: "no inicializado", "ya inicializado", etc.
  - Mantener compatibilidad con RuntimeError (uso incorrecto del pool).

Notas:
  - Los errores de sentencias (unique, FK, timeout) NO viven acá: el store los
    traduce a ConflictError / DatabaseError (crosscutting/exceptions.py).
===============================================================================
"""


class DatabasePoolError(RuntimeError):
    """Base de errores de pool de base de datos."""


class PoolAlreadyInitializedError(DatabasePoolError):
    """Se intentó inicializar el pool más de una vez."""


class PoolNotInitializedError(DatabasePoolError):
    """Se intentó usar el pool sin init_pool()."""
