"""Heuristic detectors feeding the spam evaluator."""
