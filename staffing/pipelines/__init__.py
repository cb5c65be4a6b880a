"""Data shaping steps: batch matching aggregation, templating, sender rows.

Each step is a plain function so it can be used from the stores and from
the HTTP layer alike.
"""
