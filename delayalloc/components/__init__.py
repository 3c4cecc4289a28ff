"""Delay allocation components."""
