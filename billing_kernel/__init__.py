"""
Billing Kernel - usage rating core

Decimal-exact usage billing:
- Price-list matching on configurable key fields (flat or hierarchical)
- Basic, tiered and graduated calculators with explicit rounding
- Output record assembly with matched/unmatched partitioning
"""

__version__ = "0.1.0"
