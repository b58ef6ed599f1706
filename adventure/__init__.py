"""
Adventure engine: turn-based interactive narrative driven by LLM phases
"""

__version__ = "0.1.0"
