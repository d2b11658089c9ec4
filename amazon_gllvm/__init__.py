"""
GLLVM analysis of disease incidence and socio-environmental drivers
in municipalities of the Legal Amazon.
"""
import os

# non-interactive figures (batch pipeline)
os.environ.setdefault("MPLBACKEND", "Agg")

__version__ = "0.1.0"
