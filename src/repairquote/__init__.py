"""
Repair Quote Service

USD part cost → BRL repair quote, with a multi-source USD/BRL rate resolver.
"""

__version__ = "1.0.0"
