"""Utility helpers shared across assetdb modules."""
