"""
Position Management Module

HTTP surface for opening, closing and listing margin positions.
"""
