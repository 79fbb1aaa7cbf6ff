"""Routing metrics, graph search and path selection."""
