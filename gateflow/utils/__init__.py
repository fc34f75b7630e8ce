"""Utility helpers for GateFlow."""
