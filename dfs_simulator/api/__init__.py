"""HTTP service exposing the simulator."""
