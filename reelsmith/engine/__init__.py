"""Run engine, approval gate, event channel and batch executor."""
