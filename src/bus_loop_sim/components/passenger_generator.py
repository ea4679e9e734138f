"""
Stochastic processes driving passenger demand.

A single seeded numpy ``Generator`` backs every draw in a run, so the
arrival and alighting samplers consume one reproducible stream.
"""

import math

import numpy as np


class StochasticStream:
    """Seeded random stream for passenger arrivals and alightings."""

    def __init__(self, seed: int):
        self.seed = seed
        self.rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        """Draw U uniformly from [0, 1)."""
        return float(self.rng.random())

    def exponential(self, rate_per_sec: float) -> float:
        """
        Draw an exponential inter-arrival time by inverse-CDF transform.

        Parameters:
        -----------
        rate_per_sec : float
            Arrival rate in passengers per second.

        Returns:
        --------
        float
            Seconds until the next arrival, ``inf`` when the rate is zero.
        """
        if rate_per_sec <= 0:
            return math.inf
        u = self.uniform()
        return -math.log(1.0 - u) / rate_per_sec

    def binomial(self, trials: int, probability: float) -> int:
        """Number of successes out of ``trials``, with ``probability`` clamped to [0, 1]."""
        if trials <= 0 or probability <= 0:
            return 0
        if probability >= 1:
            return trials
        return int(self.rng.binomial(trials, probability))
