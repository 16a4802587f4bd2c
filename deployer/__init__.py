"""
Sequences, deploys and records a declared plan of smart contracts.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("contract-deployer")
except PackageNotFoundError:
    __version__ = None
