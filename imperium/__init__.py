"""Simulation core for senate politics, diplomacy and city markets."""
