"""Swap terminal core: aggregator quoting, risk display, and wallet-signed execution for Solana."""

__version__ = "0.1.0"
