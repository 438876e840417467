"""
Depot - artifact publication across repository resolvers.

Builds a publication plan from a resolved module descriptor and pushes its
artifacts, checksums and descriptor to filesystem, HTTP and remote-copy
repositories.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
