"""Compile-time benchmark harness for comparing rustc builds."""

__version__ = "0.1.0"
