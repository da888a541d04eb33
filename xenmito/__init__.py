# File: xenmito/__init__.py
# Location: xenmito/xenmito/__init__.py

"""
xenmito Package.

This package drives a resumable, checkpointed pipeline that sorts nanopore
reads into organelle (mitochondrial) and nuclear reads, computes coverage
and read statistics, and calls organelle variants with external tools.
"""

from .version import __version__
