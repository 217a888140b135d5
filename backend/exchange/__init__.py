"""
Exchange Trading Platform

Rate, order and settlement engine for a multi-market brokerage.
"""

__version__ = "1.0.0"
