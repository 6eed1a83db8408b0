"""Garimpo: a conversational movie recommendation backend."""

__version__ = "0.1.0"
