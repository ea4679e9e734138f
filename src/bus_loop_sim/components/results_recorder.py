"""
Observation sink collecting the record streams of a simulation run.
"""

import json
import logging
import os
from typing import Dict, List

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


SNAPSHOT_COLUMNS = ['time_sec', 'bus_id', 'stop_idx', 'onboard', 'headway_min']
HEADWAY_COLUMNS = ['time_sec', 'bus_id', 'headway_min']
STOP_STATS_COLUMNS = ['stop_id', 'avg_q', 'q_min', 'q_max']
BUS_STATS_COLUMNS = ['bus_id', 'avg_onboard_est', 'max_onboard', 'total_boarded']

OUTPUT_FILES = {
    'snapshots': ('snapshots.csv', SNAPSHOT_COLUMNS),
    'headways': ('headways.csv', HEADWAY_COLUMNS),
    'stop_stats': ('stop_stats.csv', STOP_STATS_COLUMNS),
    'bus_stats': ('bus_stats.csv', BUS_STATS_COLUMNS),
}


class ResultsRecorder:
    """
    Receives snapshot, headway, per-stop and per-bus records.

    Records are kept as plain dicts and turned into DataFrames on demand.
    """

    def __init__(self):
        self.snapshots: List[Dict] = []
        self.headways: List[Dict] = []
        self.stop_stats: List[Dict] = []
        self.bus_stats: List[Dict] = []
        self.summary: Dict = {}

    def record_snapshot(self, time_sec: float, bus_id: int, stop_idx: int,
                        onboard: int, headway_min: float) -> None:
        self.snapshots.append({
            'time_sec': time_sec,
            'bus_id': bus_id,
            'stop_idx': stop_idx,
            'onboard': onboard,
            'headway_min': headway_min,
        })

    def record_headway(self, time_sec: float, bus_id: int, headway_min: float) -> None:
        self.headways.append({'time_sec': time_sec, 'bus_id': bus_id, 'headway_min': headway_min})

    def record_stop_summary(self, stop_id: int, avg_q: float, q_min: int, q_max: int) -> None:
        self.stop_stats.append({'stop_id': stop_id, 'avg_q': avg_q, 'q_min': q_min, 'q_max': q_max})

    def record_bus_summary(self, bus_id: int, avg_onboard_est: float,
                           max_onboard: int, total_boarded: int) -> None:
        self.bus_stats.append({
            'bus_id': bus_id,
            'avg_onboard_est': avg_onboard_est,
            'max_onboard': max_onboard,
            'total_boarded': total_boarded,
        })

    def to_dataframes(self) -> Dict[str, pd.DataFrame]:
        """
        Convert every record stream to a DataFrame.

        Returns:
        --------
        Dict[str, pd.DataFrame]
            Keyed by stream name, columns in output order.
        """
        return {
            name: pd.DataFrame(getattr(self, name), columns=columns)
            for name, (_, columns) in OUTPUT_FILES.items()
        }

    def headway_statistics(self, target_min: float) -> Dict[str, float]:
        """Spread of the headways observed at bus arrivals."""
        values = np.array([record['headway_min'] for record in self.headways], dtype=float)
        if values.size == 0:
            return {'headway_mean_min': 0.0, 'headway_std_min': 0.0, 'headway_mad_from_target_min': 0.0}
        return {
            'headway_mean_min': float(values.mean()),
            'headway_std_min': float(values.std()),
            'headway_mad_from_target_min': float(np.abs(values - target_min).mean()),
        }

    def export_results(self, output_dir: str = '.') -> None:
        """
        Export the record streams to CSV files and the summary to JSON.

        Parameters:
        -----------
        output_dir : str
            Directory to save output files.
        """
        os.makedirs(output_dir, exist_ok=True)

        frames = self.to_dataframes()
        for name, (filename, _) in OUTPUT_FILES.items():
            output_file = os.path.join(output_dir, filename)
            frames[name].to_csv(output_file, index=False, float_format='%.6f', lineterminator='\n')
            logger.info("Exported %d %s records to %s", len(frames[name]), name, output_file)

        output_file = os.path.join(output_dir, 'summary_statistics.json')
        with open(output_file, 'w') as f:
            json.dump(self.summary, f, indent=2, default=str)
        logger.info("Exported summary statistics to %s", output_file)
