"""
Circular Bus Route Simulation

A discrete-event simulator of buses circulating on a closed loop of stops,
comparing uncontrolled service with headway-holding control.
"""

__version__ = "1.0.0"
__author__ = "Bus Transit Simulation Team"

from .core import simulation_engine, data_models, event_queue
from .components import passenger_generator, headway_control, event_handlers, results_recorder
from .core.data_models import ConfigurationError, ControlMode, SimulationConfig
from .core.simulation_engine import SimulationEngine

__all__ = [
    'simulation_engine',
    'data_models',
    'event_queue',
    'passenger_generator',
    'headway_control',
    'event_handlers',
    'results_recorder',
    'ConfigurationError',
    'ControlMode',
    'SimulationConfig',
    'SimulationEngine',
]
