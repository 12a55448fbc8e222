"""Run-gate decision engine and its collaborators."""
