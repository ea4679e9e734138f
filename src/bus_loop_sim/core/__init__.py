"""
Core simulation components.

Contains the data models, the event queue and the simulation engine.
"""

from . import data_models
from . import event_queue
from . import simulation_engine

__all__ = ['data_models', 'event_queue', 'simulation_engine']
