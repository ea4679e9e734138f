"""
Simulation engine driving the discrete-event bus route model.
"""

import logging
import time
from typing import Dict, Optional

from .data_models import Event, EventType, SimulationConfig, SimulationContext
from .event_queue import EventQueue
from ..components.event_handlers import dispatch
from ..components.headway_control import HeadwayController
from ..components.passenger_generator import StochasticStream
from ..components.results_recorder import ResultsRecorder

logger = logging.getLogger(__name__)


class SimulationEngine:
    """
    Main engine that owns the event queue and the simulation context.

    Every run starts from freshly built entities, a new random stream and
    an empty recorder, so one engine can be run repeatedly without residue.
    """

    def __init__(self, config: SimulationConfig = None):
        """Initialize the simulation engine, rejecting invalid configurations."""
        self.config = config if config else SimulationConfig()
        self.config.validate()

        self.queue = EventQueue()
        self.context: Optional[SimulationContext] = None
        self.recorder: Optional[ResultsRecorder] = None
        self._prepared = False

    def setup(self) -> SimulationContext:
        """
        Build fresh entities and seed the event queue.

        Returns:
        --------
        SimulationContext
            The context the next ``run_simulation()`` will drive.
        """
        config = self.config
        self.recorder = ResultsRecorder()
        self.context = SimulationContext(config, StochasticStream(config.seed), self.recorder)
        self.context.controller = HeadwayController(self.context)
        self.queue.clear()

        for bus in self.context.buses:
            self.queue.schedule(Event(time=bus.last_departure, event_type=EventType.BUS_ARRIVAL,
                                      stop_id=bus.stop_index, bus_id=bus.bus_id))

        # Each arrival process opens with a passenger at t=0
        if config.arrival_rate_per_sec > 0:
            for stop in self.context.stops:
                self.queue.schedule(Event(time=0.0, event_type=EventType.PASSENGER_ARRIVAL,
                                          stop_id=stop.stop_id))

        # Snapshots are pre-scheduled; they never reschedule themselves
        horizon = config.horizon_sec
        tick = 0
        while tick * config.snapshot_interval_sec <= horizon:
            self.queue.schedule(Event(time=tick * config.snapshot_interval_sec,
                                      event_type=EventType.SNAPSHOT))
            tick += 1

        logger.info("Simulation set up: %d stops, %d buses, %d snapshots, mode=%s, seed=%d",
                    config.num_stops, config.num_buses, tick, config.control_mode.value, config.seed)
        self._prepared = True
        return self.context

    def inject_passenger(self, stop_id: int, time_sec: float) -> None:
        """Schedule one extra passenger arrival; call after ``setup()``."""
        if not self._prepared:
            self.setup()
        if not 0 <= stop_id < self.config.num_stops:
            raise ValueError(f"Stop {stop_id} is not on the route")
        self.queue.schedule(Event(time=time_sec, event_type=EventType.PASSENGER_ARRIVAL, stop_id=stop_id))

    def run_simulation(self) -> ResultsRecorder:
        """
        Drain events up to the horizon and emit the final summaries.

        Returns:
        --------
        ResultsRecorder
            Recorder holding all four record streams and the summary.
        """
        if not self._prepared:
            self.setup()
        self._prepared = False

        horizon = self.config.horizon_sec
        context = self.context
        start_time = time.time()

        while self.queue:
            event = self.queue.next()
            if event.time > horizon:
                break
            for new_event in dispatch(context, event):
                self.queue.schedule(new_event)
            context.events_processed += 1

        self._finalize()

        logger.info("Simulation completed in %.2f seconds: %d events processed, %d boardings",
                    time.time() - start_time, context.events_processed, context.boarding_steps)
        return self.recorder

    def _finalize(self) -> None:
        """Close the time-weighted accumulators at the horizon and emit summaries."""
        horizon = self.config.horizon_sec
        context = self.context

        for stop in context.stops:
            stop.advance(horizon)
            self.recorder.record_stop_summary(stop.stop_id, stop.average_queue(horizon),
                                              stop.queue_min, stop.queue_max)

        for bus in context.buses:
            count = context.onboard_count[bus.bus_id]
            avg_onboard = context.onboard_sum[bus.bus_id] / count if count else 0.0
            self.recorder.record_bus_summary(bus.bus_id, avg_onboard, bus.max_onboard, bus.total_boarded)

        self.recorder.summary = self.get_summary_statistics()

    def get_summary_statistics(self) -> Dict:
        """
        Generate summary statistics from the current run.

        Returns:
        --------
        Dict
            Dictionary of summary statistics.
        """
        config = self.config
        context = self.context
        target_min = config.alpha * config.target_headway_sec / 60.0

        summary = {
            'control_mode': config.control_mode.value,
            'seed': config.seed,
            'horizon_sec': config.horizon_sec,
            'target_headway_min': target_min,
            'events_processed': context.events_processed,
            'total_boarded': sum(bus.total_boarded for bus in context.buses),
            'max_onboard': max((bus.max_onboard for bus in context.buses), default=0),
            'mean_stop_queue': (sum(s.average_queue(config.horizon_sec) for s in context.stops)
                                / len(context.stops)),
            'headway_observations': len(self.recorder.headways),
        }
        summary.update(self.recorder.headway_statistics(target_min))
        return summary
