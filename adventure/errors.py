"""
Exceptions raised across the adventure engine.

Validation problems are not exceptions: they are collected as ``PhaseError``
entries in a ``TurnValidationResult`` so the phase retry loop can show them
to the model.
"""


class AdventureError(Exception):
    """Base class for adventure engine errors"""


class TransportError(AdventureError):
    """Network or API failure while talking to the model provider"""
