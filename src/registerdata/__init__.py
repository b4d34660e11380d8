"""
Registerdata: Longitudinal Registry Assembly.

This package maps heterogeneous columnar registry extracts onto a canonical
per-person record, joins sources keyed by different identifier kinds, and
assembles multi-period histories for cohort construction.
"""

from importlib.metadata import version

__version__ = version("registerdata")

__all__ = ["__version__"]
