"""Runtime concerns shared by all layers."""
