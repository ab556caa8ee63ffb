"""Dominio: entidades, requests, validación, layouts de tiempo y vistas."""
