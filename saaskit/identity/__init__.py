"""Identidad: claims del caller, claims gate y hashing de passwords."""
