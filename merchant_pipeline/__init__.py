"""
Merchant Pipeline - Kanban board for the lead / merchant sales pipeline.
"""

__version__ = "1.0.0"
