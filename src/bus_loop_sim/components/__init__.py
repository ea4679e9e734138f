"""
Simulation components.

Contains the stochastic processes, the headway control policy, the event
handlers and the observation sink.
"""

from . import passenger_generator
from . import headway_control
from . import event_handlers
from . import results_recorder

__all__ = [
    'passenger_generator',
    'headway_control',
    'event_handlers',
    'results_recorder'
]
