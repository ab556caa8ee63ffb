"""saaskit: capa de acceso a datos multi-tenant con claims gate."""

__version__ = "0.1.0"
