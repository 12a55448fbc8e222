"""HTTP surface for the run-gate runtime."""
