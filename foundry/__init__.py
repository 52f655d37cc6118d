"""Foundry: product management workspace with a gated strategy graph."""
