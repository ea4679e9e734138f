"""
Headway measurement and holding control.
"""

from ..core.data_models import Bus, ControlMode, SimulationContext


def wrap_headway(delta_sec: float, loop_time_sec: float) -> float:
    """Shift a negative time gap forward by whole loops until it is non-negative."""
    while delta_sec < 0:
        delta_sec += loop_time_sec
    return delta_sec


class HeadwayController:
    """
    Computes bus-to-predecessor spacing and the hold applied at empty stops.

    Headway is measured from the predecessor's last departure, so it is
    only meaningful while every bus keeps that timestamp current.
    """

    def __init__(self, context: SimulationContext):
        self.context = context
        config = context.config
        self.mode = config.control_mode
        self.loop_time_sec = config.loop_time_sec
        self.target_sec = config.alpha * config.target_headway_sec
        self.max_hold_sec = config.max_hold_sec

    def headway_sec(self, bus: Bus, now: float) -> float:
        predecessor = self.context.predecessor(bus)
        return wrap_headway(now - predecessor.last_departure, self.loop_time_sec)

    def headway_min(self, bus: Bus, now: float) -> float:
        """Headway in minutes, the unit of inter-stop travel time."""
        return self.headway_sec(bus, now) / 60.0

    def hold_seconds(self, bus: Bus, now: float) -> float:
        """
        Dwell extension for a bus ready to leave an empty stop.

        Parameters:
        -----------
        bus : Bus
            Bus about to depart.
        now : float
            Time the bus is ready to depart, in seconds.

        Returns:
        --------
        float
            Hold in seconds, in ``[0, max_hold_sec]``; always 0 without control.
        """
        if self.mode is not ControlMode.HOLD:
            return 0.0
        deficit = max(0.0, self.target_sec - self.headway_sec(bus, now))
        return min(deficit, self.max_hold_sec)
