# tokenforge (metadata pinning, unsigned SPL token transactions and fee verification)

__version__ = "0.1.0"
