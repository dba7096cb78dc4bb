"""
Ahorros - Personal Finance Core

Records income/expense transactions, tracks savings goals, simulates
compound interest and persists everything as one versioned document
in a client-local store.

DESIGN PRINCIPLES:
1. Every import source converges on one row-record shape
2. Mapping and validation are separate steps (previews never validate)
3. Bad rows are rejected, never raised
4. Every mutation is a whole-document replace
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ahorros Team"
