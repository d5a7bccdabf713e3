"""Differentially private counts, bounded sums and variances built on the Laplace mechanism."""

__version__ = "0.1.0"