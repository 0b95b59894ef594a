"""kubepivot: provider lifecycle management and pivoting for Cluster API management clusters."""

__version__ = "0.1.0"
