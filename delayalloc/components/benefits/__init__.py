"""Benefit classification, allocation and aggregation components."""
