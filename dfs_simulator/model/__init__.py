"""Network nodes, links and the topology that owns them."""
