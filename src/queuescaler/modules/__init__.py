"""Scaling building blocks: queue monitor, policy evaluator and compute backends."""
