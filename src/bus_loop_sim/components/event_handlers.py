"""
Event handlers for the circular route simulation.

Each handler applies one event to the simulation context and returns the
events it causes. Handlers never touch the event queue directly.
"""

import logging
from typing import Callable, Dict, List

from ..core.data_models import Bus, Event, EventType, SimulationContext

logger = logging.getLogger(__name__)


def _depart(context: SimulationContext, bus: Bus, stop_id: int, depart_time: float) -> Event:
    """Record a departure and return the bus's arrival at the next stop."""
    bus.last_departure = depart_time
    return Event(
        time=depart_time + context.config.travel_time_sec,
        event_type=EventType.BUS_ARRIVAL,
        stop_id=context.next_stop(stop_id),
        bus_id=bus.bus_id,
    )


def handle_passenger_arrival(context: SimulationContext, event: Event) -> List[Event]:
    stop = context.stops[event.stop_id]
    stop.arrive(event.time)

    rate = context.config.arrival_rate_per_sec
    if rate <= 0:
        return []
    next_time = event.time + context.stream.exponential(rate)
    return [Event(time=next_time, event_type=EventType.PASSENGER_ARRIVAL, stop_id=event.stop_id)]


def handle_bus_arrival(context: SimulationContext, event: Event) -> List[Event]:
    """
    Alight passengers, then either start boarding or leave the stop.

    Leaving an empty stop is the only point where holding control applies.
    """
    config = context.config
    bus = context.buses[event.bus_id]
    stop = context.stops[event.stop_id]

    bus.stop_index = event.stop_id
    stop.advance(event.time)

    headway = context.controller.headway_min(bus, event.time)
    context.recorder.record_headway(event.time, bus.bus_id, headway)

    alighting = context.stream.binomial(bus.onboard, config.alight_probability)
    bus.alight(alighting)
    ready_time = event.time + alighting * config.alight_sec

    if stop.queue_length == 0:
        hold = context.controller.hold_seconds(bus, ready_time)
        if hold > 0:
            logger.debug("Bus %d holding %.1fs at stop %d", bus.bus_id, hold, stop.stop_id)
        return [_depart(context, bus, stop.stop_id, ready_time + hold)]

    return [Event(time=ready_time, event_type=EventType.BOARDING_STEP,
                  stop_id=stop.stop_id, bus_id=bus.bus_id)]


def handle_boarding_step(context: SimulationContext, event: Event) -> List[Event]:
    bus = context.buses[event.bus_id]
    stop = context.stops[event.stop_id]

    if stop.queue_length == 0:
        # Nothing left to board; leave right away
        return [_depart(context, bus, stop.stop_id, event.time)]

    stop.depart(event.time)
    bus.board()
    context.boarding_steps += 1

    if stop.queue_length > 0:
        return [Event(time=event.time + context.config.board_sec, event_type=EventType.BOARDING_STEP,
                      stop_id=stop.stop_id, bus_id=bus.bus_id)]
    return [_depart(context, bus, stop.stop_id, event.time)]


def handle_snapshot(context: SimulationContext, event: Event) -> List[Event]:
    for bus in context.buses:
        headway = context.controller.headway_min(bus, event.time)
        context.recorder.record_snapshot(event.time, bus.bus_id, bus.stop_index, bus.onboard, headway)
        context.onboard_sum[bus.bus_id] += bus.onboard
        context.onboard_count[bus.bus_id] += 1
    return []


EVENT_HANDLERS: Dict[EventType, Callable[[SimulationContext, Event], List[Event]]] = {
    EventType.PASSENGER_ARRIVAL: handle_passenger_arrival,
    EventType.BUS_ARRIVAL: handle_bus_arrival,
    EventType.BOARDING_STEP: handle_boarding_step,
    EventType.SNAPSHOT: handle_snapshot,
}


def dispatch(context: SimulationContext, event: Event) -> List[Event]:
    """Apply ``event`` with the handler registered for its kind."""
    try:
        handler = EVENT_HANDLERS[event.event_type]
    except KeyError:
        raise ValueError(f"No handler registered for event type {event.event_type!r}")
    return handler(context, event)
