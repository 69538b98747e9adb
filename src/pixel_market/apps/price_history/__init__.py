"""Price-history cache for PixelGrid pixels.

Index ``PixelListed`` and ``PixelSale`` contract events into a local
database, both by backfilling a recent block window and by following the
chain head, and serve per-pixel history and sale statistics from it.
"""
