"""Applications built on the pixel-market clients and core helpers."""
