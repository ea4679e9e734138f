"""
Core data models and structures for the circular bus route simulation.
"""

import math
import numbers
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class ConfigurationError(ValueError):
    """Raised when a simulation configuration cannot be run."""


def _is_integer(value) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


class ControlMode(Enum):
    """Operating policy applied at bus stops."""
    NONE = "none"
    HOLD = "hold"

    @classmethod
    def parse(cls, value) -> "ControlMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown control mode: {value!r}")


class EventType(Enum):
    """Kinds of events handled by the simulation engine."""
    PASSENGER_ARRIVAL = "passenger_arrival"
    BUS_ARRIVAL = "bus_arrival"
    BOARDING_STEP = "boarding_step"
    SNAPSHOT = "snapshot"


@dataclass
class Stop:
    """Represents a bus stop with a passenger queue."""
    stop_id: int
    queue_length: int = 0
    last_change: float = 0.0  # seconds
    area_queue: float = 0.0  # integral of queue length over time
    queue_min: int = 0
    queue_max: int = 0

    def advance(self, now: float) -> None:
        """Accumulate the queue integral up to ``now``."""
        self.area_queue += self.queue_length * (now - self.last_change)
        self.last_change = now

    def arrive(self, now: float) -> None:
        self.advance(now)
        self.queue_length += 1
        if self.queue_length > self.queue_max:
            self.queue_max = self.queue_length

    def depart(self, now: float) -> None:
        self.advance(now)
        if self.queue_length > 0:
            self.queue_length -= 1
        if self.queue_length < self.queue_min:
            self.queue_min = self.queue_length

    def average_queue(self, horizon: float) -> float:
        """Time-weighted average queue length over ``[0, horizon]``."""
        if horizon <= 0:
            return 0.0
        return self.area_queue / horizon


@dataclass
class Bus:
    """Represents a bus circulating on the route."""
    bus_id: int
    stop_index: int
    last_departure: float = 0.0  # seconds
    onboard: int = 0
    max_onboard: int = 0
    total_boarded: int = 0

    def board(self) -> None:
        self.onboard += 1
        if self.onboard > self.max_onboard:
            self.max_onboard = self.onboard
        self.total_boarded += 1

    def alight(self, count: int) -> None:
        self.onboard = max(0, self.onboard - max(0, count))


@dataclass
class Event:
    """A scheduled point in simulated time."""
    time: float  # seconds
    event_type: EventType
    stop_id: Optional[int] = None
    bus_id: Optional[int] = None

    def __str__(self) -> str:
        stop = self.stop_id if self.stop_id is not None else "-"
        bus = self.bus_id if self.bus_id is not None else "-"
        return f"{self.event_type.name}(t={self.time:.2f}, stop={stop}, bus={bus})"


@dataclass(frozen=True)
class SimulationConfig:
    """Configuration for a simulation run."""
    num_stops: int = 15
    num_buses: int = 5
    travel_time_min: float = 5.0  # minutes between adjacent stops
    board_sec: float = 2.0  # seconds per boarding passenger
    alight_sec: float = 1.0  # seconds per alighting passenger
    avg_trip_stops: float = 5.0  # expected number of stops a rider stays onboard
    arrival_rate_per_min: float = 2.5  # passengers per minute per stop
    horizon_hours: float = 8.0
    seed: int = 42
    snapshot_interval_sec: float = 60.0
    control_mode: ControlMode = ControlMode.NONE
    alpha: float = 1.0  # target headway multiplier
    max_hold_sec: float = 90.0

    @property
    def travel_time_sec(self) -> float:
        return self.travel_time_min * 60.0

    @property
    def horizon_sec(self) -> float:
        return self.horizon_hours * 3600.0

    @property
    def arrival_rate_per_sec(self) -> float:
        return self.arrival_rate_per_min / 60.0

    @property
    def loop_time_sec(self) -> float:
        return self.num_stops * self.travel_time_sec

    @property
    def target_headway_sec(self) -> float:
        """Evenly spaced headway, before the ``alpha`` multiplier."""
        return self.loop_time_sec / self.num_buses

    @property
    def alight_probability(self) -> float:
        return 1.0 / max(1.0, self.avg_trip_stops)

    def validate(self) -> None:
        """
        Reject configurations that cannot be simulated.

        Raises:
        -------
        ConfigurationError
            If any parameter is out of range.
        """
        if not isinstance(self.control_mode, ControlMode):
            raise ConfigurationError(f"Unknown control mode: {self.control_mode!r}")

        counts = {
            'num_stops': self.num_stops,
            'num_buses': self.num_buses,
        }
        for name, value in counts.items():
            if not _is_integer(value):
                raise ConfigurationError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        # numpy only accepts non-negative integer seeds
        if not _is_integer(self.seed) or self.seed < 0:
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}")

        positive = {
            'travel_time_min': self.travel_time_min,
            'horizon_hours': self.horizon_hours,
            'snapshot_interval_sec': self.snapshot_interval_sec,
            'alpha': self.alpha,
        }
        for name, value in positive.items():
            if not math.isfinite(value) or value <= 0:
                raise ConfigurationError(f"{name} must be positive, got {value}")

        non_negative = {
            'board_sec': self.board_sec,
            'alight_sec': self.alight_sec,
            'avg_trip_stops': self.avg_trip_stops,
            'arrival_rate_per_min': self.arrival_rate_per_min,
            'max_hold_sec': self.max_hold_sec,
        }
        for name, value in non_negative.items():
            if not math.isfinite(value) or value < 0:
                raise ConfigurationError(f"{name} must be non-negative, got {value}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "SimulationConfig":
        """Build a config from a flat mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {key: value for key, value in values.items() if key in known and value is not None}
        if 'control_mode' in kwargs:
            kwargs['control_mode'] = ControlMode.parse(kwargs['control_mode'])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result['control_mode'] = self.control_mode.value
        return result


class SimulationContext:
    """Container for all state owned by a single simulation run."""

    def __init__(self, config: SimulationConfig, stream, recorder):
        """Initialize fresh entities sized from the configuration."""
        self.config = config
        self.stream = stream  # StochasticStream shared by all samplers
        self.recorder = recorder  # ResultsRecorder receiving observations
        self.controller = None  # HeadwayController, attached by the engine

        self.stops: List[Stop] = [Stop(stop_id=s) for s in range(config.num_stops)]
        self.buses: List[Bus] = []

        # Snapshot accumulators for the average onboard estimate
        self.onboard_sum: List[float] = [0.0] * config.num_buses
        self.onboard_count: List[int] = [0] * config.num_buses

        self.events_processed = 0
        self.boarding_steps = 0

        self.initialize_buses()

    def initialize_buses(self) -> None:
        """Place buses evenly around the route in time and space."""
        config = self.config
        self.buses = []
        for b in range(config.num_buses):
            start_stop = int(math.floor(b * config.num_stops / config.num_buses)) % config.num_stops
            start_time = b * config.target_headway_sec
            self.buses.append(Bus(bus_id=b, stop_index=start_stop, last_departure=start_time))

    def next_stop(self, stop_id: int) -> int:
        return (stop_id + 1) % self.config.num_stops

    def predecessor(self, bus: Bus) -> Bus:
        """The bus immediately ahead in service order."""
        num_buses = self.config.num_buses
        return self.buses[(bus.bus_id - 1 + num_buses) % num_buses]
