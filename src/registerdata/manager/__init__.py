"""
Registry manager: registration, cached loading, joins and longitudinal
assembly.
"""

from registerdata.manager.core import RegistryManager

__all__ = ["RegistryManager"]
