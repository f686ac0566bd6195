"""Building blocks for firmware update tooling: U-Boot environments, sparse
file maps, block-aligned writers, framed output and progress reporting."""

__version__ = "0.1.0"