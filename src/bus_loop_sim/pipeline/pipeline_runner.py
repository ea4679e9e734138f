"""
Main pipeline runner for configuring, running and exporting bus route simulations.
"""

import argparse
import logging
import os
import sys
import time
import traceback
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

import pandas as pd
import yaml

from ..core.data_models import ConfigurationError, ControlMode, SimulationConfig
from ..core.simulation_engine import SimulationEngine

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = {
    'simulation': {
        'num_stops': 15,
        'num_buses': 5,
        'travel_time_min': 5.0,
        'board_sec': 2.0,
        'alight_sec': 1.0,
        'avg_trip_stops': 5.0,
        'arrival_rate_per_min': 2.5,
        'horizon_hours': 8.0,
        'seed': 42,
        'snapshot_interval_sec': 60.0,
    },
    'control': {
        'control_mode': 'none',
        'alpha': 1.0,
        'max_hold_sec': 90.0,
    },
    'output': {
        'directory': 'output',
        'summary': True,
        'debug': False,
    },
}

OUTPUT_FILES = [
    'snapshots.csv',
    'headways.csv',
    'stop_stats.csv',
    'bus_stats.csv',
    'summary_statistics.json',
]


def load_config(config_path: Optional[str]) -> Dict[str, Any]:
    """
    Load a YAML configuration file merged over the defaults.

    A missing path yields the defaults; a file that exists but cannot be
    parsed is an error.
    """
    config = {section: dict(values) for section, values in DEFAULT_CONFIG.items()}
    if not config_path:
        return config
    if not os.path.exists(config_path):
        logger.warning("Config file %s not found, using defaults", config_path)
        return config

    with open(config_path, 'r') as file:
        loaded = yaml.safe_load(file) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    for section, values in loaded.items():
        if isinstance(values, dict):
            config.setdefault(section, {}).update(values)
        else:
            config[section] = values
    return config


def build_simulation_config(config: Dict[str, Any]) -> SimulationConfig:
    """Flatten the ``simulation`` and ``control`` sections into a SimulationConfig."""
    values = {}
    values.update(config.get('simulation', {}) or {})
    values.update(config.get('control', {}) or {})
    return SimulationConfig.from_dict(values)


def compare_policies(base_config: SimulationConfig, seeds: Iterable[int]) -> pd.DataFrame:
    """
    Run the same configuration with and without holding control.

    Parameters:
    -----------
    base_config : SimulationConfig
        Configuration shared by every run; its mode and seed are overridden.
    seeds : Iterable[int]
        Seeds to replicate each policy with.

    Returns:
    --------
    pd.DataFrame
        One row per (control_mode, seed) with the run's summary statistics.
    """
    rows = []
    for seed in seeds:
        for mode in (ControlMode.NONE, ControlMode.HOLD):
            config = replace(base_config, seed=seed, control_mode=mode)
            recorder = SimulationEngine(config).run_simulation()
            rows.append(dict(recorder.summary))
            logger.info("mode=%s seed=%d headway std=%.3f min", mode.value, seed,
                        recorder.summary['headway_std_min'])
    return pd.DataFrame(rows)


class SimulationPipeline:
    """
    Pipeline orchestrator for a single simulation run.
    """

    def __init__(self, config_path: str = None, overrides: Dict[str, Dict[str, Any]] = None):
        """
        Initialize the pipeline.

        Parameters:
        -----------
        config_path : str
            Path to the configuration file.
        overrides : Dict[str, Dict[str, Any]]
            Per-section values taking precedence over the file.
        """
        self.config_path = config_path or "config/simulation_config.yaml"
        self.config = load_config(self.config_path)
        for section, values in (overrides or {}).items():
            self.config.setdefault(section, {}).update(
                {key: value for key, value in values.items() if value is not None})
        self.logger = self._setup_logging()

        self.sim_config: Optional[SimulationConfig] = None
        self.engine: Optional[SimulationEngine] = None
        self.results = {}

    def _setup_logging(self) -> logging.Logger:
        """Set up logging configuration."""
        output_dir = self.config.get('output', {}).get('directory', 'output')
        os.makedirs(output_dir, exist_ok=True)

        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        log_level = logging.DEBUG if self.config.get('output', {}).get('debug', False) else logging.INFO

        log_file = os.path.join(output_dir, f'simulation_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')

        logging.basicConfig(
            level=log_level,
            format=log_format,
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler(sys.stdout)
            ]
        )

        pipeline_logger = logging.getLogger('SimulationPipeline')
        pipeline_logger.info(f"Logging initialized. Log file: {log_file}")

        return pipeline_logger

    def validate_inputs(self) -> bool:
        """
        Validate the configuration before anything is simulated.

        Returns:
        --------
        bool
            True if validation passes, False otherwise.
        """
        self.logger.info("Starting input validation...")

        try:
            self.sim_config = build_simulation_config(self.config)
            self.sim_config.validate()
        except (ConfigurationError, TypeError) as e:
            self.logger.error(f"Invalid configuration: {str(e)}")
            return False

        if self.sim_config.horizon_hours > 24 * 7:
            self.logger.warning(f"Long simulation horizon: {self.sim_config.horizon_hours} hours")

        self.logger.info("Input validation completed successfully")
        return True

    def run_simulation(self) -> bool:
        """
        Run the main simulation and export its results.

        Returns:
        --------
        bool
            True if simulation completes successfully, False otherwise.
        """
        self.logger.info("Starting simulation...")

        try:
            self.engine = SimulationEngine(self.sim_config)
            recorder = self.engine.run_simulation()

            output_dir = self.config.get('output', {}).get('directory', 'output')
            self.logger.info(f"Exporting results to {output_dir}...")
            recorder.export_results(output_dir)

            self.results = {
                'snapshot_records': len(recorder.snapshots),
                'headway_records': len(recorder.headways),
                'total_boarded': recorder.summary['total_boarded'],
                'output_directory': output_dir,
            }

            if self.config.get('output', {}).get('summary', True):
                self.results['summary'] = recorder.summary
                self.logger.info("Summary statistics generated")

            return True

        except Exception as e:
            self.logger.error(f"Simulation error: {str(e)}")
            self.logger.error(traceback.format_exc())
            return False

    def post_process_results(self) -> bool:
        """
        Check that every expected output file was written.

        Returns:
        --------
        bool
            True if post-processing succeeds, False otherwise.
        """
        self.logger.info("Starting post-processing...")

        output_dir = self.config.get('output', {}).get('directory', 'output')
        missing_files = [f for f in OUTPUT_FILES if not os.path.exists(os.path.join(output_dir, f))]

        if missing_files:
            self.logger.error(f"Missing output files: {missing_files}")
            return False

        total_size = 0
        for file in OUTPUT_FILES:
            size = os.path.getsize(os.path.join(output_dir, file))
            total_size += size
            self.logger.info(f"{file}: {size / 1024:.1f} KB")

        self.results['total_output_size_mb'] = total_size / 1024 / 1024
        self.logger.info("Post-processing completed successfully")
        return True

    def run_pipeline(self) -> Dict[str, Any]:
        """
        Run the complete pipeline.

        Returns:
        --------
        Dict[str, Any]
            Pipeline results and metadata.
        """
        pipeline_start_time = time.time()
        self.logger.info("="*60)
        self.logger.info(" Circular Bus Route Simulation ".center(60, "="))
        self.logger.info("="*60)

        stages = [
            ('validation', "Stage 1: Input Validation", self.validate_inputs, 'Input validation failed'),
            ('simulation', "Stage 2: Simulation Execution", self.run_simulation, 'Simulation execution failed'),
            ('post_processing', "Stage 3: Post-Processing", self.post_process_results, 'Post-processing failed'),
        ]
        for stage, title, step, error in stages:
            self.logger.info(title)
            if not step():
                return {
                    'success': False,
                    'stage': stage,
                    'error': error,
                    'duration_seconds': time.time() - pipeline_start_time
                }

        pipeline_duration = time.time() - pipeline_start_time

        self.logger.info("="*60)
        self.logger.info("Pipeline completed successfully!")
        self.logger.info(f"Total duration: {pipeline_duration:.2f} seconds")
        self.logger.info("="*60)

        return {
            'success': True,
            'duration_seconds': pipeline_duration,
            'results': self.results,
            'config': self.config,
            'timestamp': datetime.now().isoformat()
        }


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='Run the circular bus route simulation.')

    parser.add_argument('--config', type=str, default='config/simulation_config.yaml',
                        help='Path to YAML configuration file')
    parser.add_argument('--hours', type=float, help='Simulation horizon in hours')
    parser.add_argument('--seed', type=int, help='Random seed for reproducibility')
    parser.add_argument('--mode', type=str, choices=['none', 'hold'], help='Control mode')
    parser.add_argument('--max-hold-sec', type=float, help='Maximum hold per stop in seconds')
    parser.add_argument('--alpha', type=float, help='Target headway multiplier')
    parser.add_argument('--lambda', dest='arrival_rate', type=float,
                        help='Passenger arrivals per minute per stop')
    parser.add_argument('--buses', type=int, help='Number of buses')
    parser.add_argument('--stops', type=int, help='Number of stops')
    parser.add_argument('--travel-min', type=float, help='Travel time between adjacent stops in minutes')
    parser.add_argument('--board-sec', type=float, help='Seconds per boarding passenger')
    parser.add_argument('--alight-sec', type=float, help='Seconds per alighting passenger')
    parser.add_argument('--avg-trip-stops', type=float, help='Expected number of stops a rider stays onboard')
    parser.add_argument('--snapshot-sec', type=float, help='Seconds between snapshots')
    parser.add_argument('--output-dir', type=str, help='Directory to save output files')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--compare', action='store_true',
                        help='Compare no control against holding control over several seeds')
    parser.add_argument('--seeds', type=int, nargs='+', default=[1, 2, 3, 4, 5],
                        help='Seeds used with --compare')

    return parser.parse_args(argv)


def overrides_from_args(args) -> Dict[str, Dict[str, Any]]:
    """Map command line values onto configuration sections."""
    return {
        'simulation': {
            'horizon_hours': args.hours,
            'seed': args.seed,
            'arrival_rate_per_min': args.arrival_rate,
            'num_buses': args.buses,
            'num_stops': args.stops,
            'travel_time_min': args.travel_min,
            'board_sec': args.board_sec,
            'alight_sec': args.alight_sec,
            'avg_trip_stops': args.avg_trip_stops,
            'snapshot_interval_sec': args.snapshot_sec,
        },
        'control': {
            'control_mode': args.mode,
            'alpha': args.alpha,
            'max_hold_sec': args.max_hold_sec,
        },
        'output': {
            'directory': args.output_dir,
            'debug': True if args.debug else None,
        },
    }


def main(argv=None):
    """Main function for running the pipeline."""
    args = parse_args(argv)

    pipeline = SimulationPipeline(config_path=args.config, overrides=overrides_from_args(args))

    if args.compare:
        if not pipeline.validate_inputs():
            sys.exit(1)
        comparison = compare_policies(pipeline.sim_config, args.seeds)
        output_dir = pipeline.config['output']['directory']
        output_file = os.path.join(output_dir, 'policy_comparison.csv')
        comparison.to_csv(output_file, index=False, float_format='%.6f')
        print(comparison.groupby('control_mode')[['headway_std_min', 'headway_mad_from_target_min']].mean())
        print(f"Policy comparison written to {output_file}")
        sys.exit(0)

    results = pipeline.run_pipeline()

    if results['success']:
        print(f"Pipeline completed successfully in {results['duration_seconds']:.2f} seconds")
        sys.exit(0)
    else:
        print(f"Pipeline failed at stage '{results['stage']}': {results['error']}")
        sys.exit(1)


if __name__ == "__main__":
    main()
