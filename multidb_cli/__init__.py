"""Run one command against many databases and collect typed result tables."""
