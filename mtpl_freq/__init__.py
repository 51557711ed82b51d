"""Poisson claim-frequency models (GLM and feed-forward networks) on French MTPL data."""

__version__ = "0.1.0"
