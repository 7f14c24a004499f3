"""Batch Tracker - perishable inventory tracked by receipt batch.

Stock is consumed from the batch closest to expiry, the aggregate product
stock is kept equal to the sum of live batches, and every change is written
to an append-only adjustment ledger.
"""

__version__ = "0.1.0"
