"""Snapshot projections: graph view, bipartite visualizer, report formatting."""
