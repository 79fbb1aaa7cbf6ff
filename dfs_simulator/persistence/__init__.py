"""Export and restore of topologies."""
