"""
Prizm - local embedding service

Loads a quantized sentence-embedding model on demand and serves
vectors to the Prizm agent's memory index.
"""

__version__ = "1.0.0"
__author__ = "Prizm Team"
