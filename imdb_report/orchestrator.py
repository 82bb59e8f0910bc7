"""
orchestrator.py
===============
Runs the full IMDb rating report from a JSON configuration.

Stages:
- Load and clean the raw CSV, add genre indicators and log predictors
- For each configured model step: fit, diagnostics, plots, VIF and the
  optional refinements (influential-point removal, Box-Cox, stepwise)
- Refit the baseline and final formulas on a seeded training split and
  compare test RMSE
- Write the report artifacts

State is threaded explicitly: every step names the dataset it consumes
("clean", "<step>", "<step>:trimmed", "<step>:boxcox") and registers what
it produces. The run stops on the first fatal error.

Usage:
    python -m imdb_report.orchestrator                         # Uses Orchestrator.json
    python -m imdb_report.orchestrator --config MyConfig.json  # Uses custom config
    imdb-report --data data/imdb.csv
"""

import argparse
import json
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .base_model import (FittedModel, FormulaSpec, constant_indicators, fit_ols, log_coefficients, log_section,
                         setup_logging)
from .data_loader import ADVISORY_LEVELS, FILM_TYPE, SENTINEL, CleaningReport, clean_records, load_raw
from .diagnostics import (NORMALITY_ALPHA, log_vif, normality_test, plot_diagnostics,
                          variance_inflation)
from .evaluation import RANDOM_SEED, TRAIN_FRACTION, evaluate_rmse, split_train_test
from .features import GENRE_SEPARATOR, add_genre_dummies, add_log_columns
from .outliers import remove_influential
from .report import ReportWriter
from .selection import backward_stepwise
from .transforms import LAMBDA_GRID, apply_boxcox, boxcox_profile

GENRE_PLACEHOLDER = '@genres'
REQUIRED_KEYS = ['scenario_name', 'data_settings', 'model_steps', 'evaluation_settings']


class ReportPipeline:
    """
    Master runner for the model sequence described in the configuration
    """

    def __init__(self, config_path: str = "Orchestrator.json", data_path: Optional[str] = None):
        """
        Initialize the pipeline

        Args:
            config_path: Path to JSON configuration file
            data_path: Optional override of data_settings.input_path
        """
        self.config_path = Path(config_path)
        self.config = self.load_configuration()
        if data_path is not None:
            # command-line paths are relative to the working directory
            self.config['data_settings']['input_path'] = str(Path(data_path).resolve())

        self.datasets: Dict[str, pd.DataFrame] = {}
        self.models: Dict[str, FittedModel] = {}
        self.genre_columns: List[str] = []
        self.cleaning_report: Optional[CleaningReport] = None
        self.rmse: Dict[str, float] = {}

        # Setup logging
        self.setup_logging()

        # Create output directories
        self.setup_output_dirs()

        self.report = ReportWriter(self.output_dir)

    # ========================================================================
    # CONFIGURATION
    # ========================================================================

    def load_configuration(self) -> Dict:
        """Load and validate JSON configuration"""
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                f"Please create Orchestrator.json or specify --config"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)

        return validate_configuration(config)

    def _resolve(self, path_str: str) -> Path:
        path = Path(path_str)
        if not path.is_absolute():
            path = self.config_path.parent / path
        return path

    def setup_logging(self):
        output_settings = self.config.get('output_settings', {})
        self.log_dir = self._resolve(output_settings.get('log_dir', 'report/logs'))
        self.logger = setup_logging('imdb_report', log_dir=self.log_dir,
                                    log_suffix=self.config.get('log_suffix'))

        self.logger.info("=" * 80)
        self.logger.info("IMDB RATING REPORT")
        self.logger.info("=" * 80)
        self.logger.info(f"Configuration: {self.config_path}")
        self.logger.info(f"Scenario: {self.config['scenario_name']}")

    def setup_output_dirs(self):
        """Create output directory structure"""
        output_settings = self.config.get('output_settings', {})
        self.output_dir = self._resolve(output_settings.get('output_dir', 'report/models'))
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.make_plots = output_settings.get('plots', True)
        self.logger.info(f"Output directory: {self.output_dir}")

    # ========================================================================
    # DATA PREPARATION
    # ========================================================================

    def prepare_data(self) -> pd.DataFrame:
        log_section(self.logger, "LOADING AND CLEANING DATA", "=")
        data_settings = self.config['data_settings']
        cleaning = self.config.get('cleaning_settings', {})
        features = self.config.get('feature_settings', {})

        raw = load_raw(self._resolve(data_settings['input_path']))
        clean, self.cleaning_report = clean_records(
            raw,
            sentinel=cleaning.get('sentinel', SENTINEL),
            film_type=cleaning.get('film_type', FILM_TYPE),
            advisory_levels=cleaning.get('advisory_levels', ADVISORY_LEVELS),
        )
        if self.cleaning_report.n_clean == 0:
            raise ValueError("No records survived cleaning; nothing to model")
        self.report.add_section('cleaning', self.cleaning_report.as_dict())

        log_section(self.logger, "FEATURE PREPARATION")
        data, vocab = add_genre_dummies(clean, sep=features.get('genre_separator', GENRE_SEPARATOR))
        self.genre_columns = list(vocab.columns)
        self.report.add_section('genres', vocab.mapping())

        log_columns = features.get('log_columns', [])
        if log_columns:
            data, _ = add_log_columns(data, log_columns)

        self.logger.info(f"Modelling frame: {len(data):,} rows x {len(data.columns)} columns")
        self.datasets['clean'] = data
        return data

    def formula_for(self, step: Dict[str, Any], data: Optional[pd.DataFrame] = None) -> FormulaSpec:
        """Expand the genre placeholder and drop indicators that are constant on the step's data"""
        spec = FormulaSpec.from_config(step['formula'])
        spec = spec.expand({GENRE_PLACEHOLDER: self.genre_columns})
        if data is None:
            return spec

        constant = [col for col in constant_indicators(data, spec.variables()) if col != spec.response]
        if constant:
            self.logger.warning(f"{step['name']}: dropping indicators constant on its data: {', '.join(constant)}")
            spec = spec.drop_variables(constant)
        return spec

    def dataset(self, key: str) -> pd.DataFrame:
        if key not in self.datasets:
            raise ValueError(f"Unknown dataset '{key}'. Available: {sorted(self.datasets)}")
        return self.datasets[key]

    def model(self, key: str) -> FittedModel:
        if key not in self.models:
            raise ValueError(f"Unknown model '{key}'. Available: {sorted(self.models)}")
        return self.models[key]

    # ========================================================================
    # MODEL STEPS
    # ========================================================================

    def run_single_step(self, step: Dict[str, Any]) -> FittedModel:
        """
        Fit one configured model and run its diagnostics and refinements

        Args:
            step: Entry of config['model_steps']

        Returns:
            The fitted model

        Raises:
            RuntimeError: If any stage fails (stops the run)
        """
        name = step['name']
        log_section(self.logger, f"MODEL STEP: {name}", "=")

        try:
            data = self.dataset(step.get('data', 'clean'))
            spec = self.formula_for(step, data)
            model = fit_ols(data, spec, name=name)
            self.models[name] = model
            self.datasets[name] = model.data
            log_coefficients(self.logger, model)

            extra: Dict[str, Any] = {}
            if step.get('diagnostics', True):
                normality = normality_test(model, alpha=step.get('alpha', NORMALITY_ALPHA))
                extra.update(normality.as_dict())
                if self.make_plots:
                    plot_file = plot_diagnostics(model, self.output_dir / name / 'diagnostic_plots.png')
                    extra['diagnostic_plots'] = str(plot_file)

            if step.get('vif', False):
                vif = variance_inflation(model)
                log_vif(self.logger, vif)
                self.report.add_table(name, 'vif', vif)

            if step.get('remove_outliers', False):
                outliers = remove_influential(model, threshold=step.get('cooks_threshold'))
                self.datasets[f"{name}:trimmed"] = outliers.data
                extra['outliers'] = outliers.diagnostics

            boxcox_cfg = step.get('boxcox')
            if boxcox_cfg:
                boxcox_cfg = boxcox_cfg if isinstance(boxcox_cfg, dict) else {}
                column = boxcox_cfg.get('column', spec.response)
                if column != spec.response:
                    raise ValueError(f"Box-Cox column '{column}' must be the step's response '{spec.response}'")
                lambdas = boxcox_cfg.get('lambdas', LAMBDA_GRID)
                result = boxcox_profile(model, lambdas=lambdas,
                                        allow_shift=boxcox_cfg.get('allow_shift', False))
                self.datasets[f"{name}:boxcox"] = apply_boxcox(
                    model.data, column, result.lam, target=boxcox_cfg.get('target'), shift=result.shift
                )
                extra['boxcox_lambda'] = result.lam
                extra['boxcox'] = result.as_dict()

            entry = self.report.add_model(model, **extra)

            if step.get('stepwise', False):
                selected = backward_stepwise(model)
                key = f"{name}:stepwise"
                self.models[key] = selected.model
                self.datasets[key] = selected.model.data
                stepwise_extra: Dict[str, Any] = {
                    'removed_terms': selected.removed_terms,
                    'start_aic': selected.start_aic,
                }
                if step.get('diagnostics', True):
                    stepwise_extra.update(normality_test(selected.model).as_dict())
                    if self.make_plots:
                        stepwise_extra['diagnostic_plots'] = str(plot_diagnostics(
                            selected.model, self.output_dir / f"{name}_stepwise" / 'diagnostic_plots.png'))
                self.report.add_model(selected.model, **stepwise_extra)
                if step.get('vif', False):
                    vif = variance_inflation(selected.model)
                    log_vif(self.logger, vif, title="Variance Inflation Factors (after stepwise)")
                    self.report.add_table(selected.model.name, 'vif', vif)

            self.logger.info(f"+ Step {name} completed: adj R^2 = {entry['adj_r_squared']:.4f}")
            return model

        except Exception as e:
            # Log error and re-raise to stop the run
            error_msg = f"FATAL ERROR in step {name}: {str(e)}"
            self.logger.error(error_msg)
            self.logger.error(traceback.format_exc())

            raise RuntimeError(
                f"Step {name} failed. Stopping pipeline.\n"
                f"Error: {str(e)}\n"
                f"See log file for details."
            ) from e

    def run_all_steps(self):
        steps = self.config['model_steps']
        log_section(self.logger, f"RUNNING {len(steps)} MODEL STEPS", "=")
        for i, step in enumerate(steps, 1):
            self.logger.info(f"[{i}/{len(steps)}] Starting {step['name']}...")
            self.run_single_step(step)

    # ========================================================================
    # EVALUATION
    # ========================================================================

    def run_evaluation(self) -> Dict[str, float]:
        settings = self.config['evaluation_settings']
        log_section(self.logger, "HELD-OUT EVALUATION", "=")

        data = self.dataset(settings.get('data', 'clean'))
        seed = settings.get('random_seed', self.config['data_settings'].get('random_seed', RANDOM_SEED))
        split = split_train_test(data, train_fraction=settings.get('train_fraction', TRAIN_FRACTION), seed=seed)

        specs = {
            'baseline': self.model(settings['baseline']).spec,
            'final': self.model(settings['final']).spec,
        }
        for label, spec in specs.items():
            self.logger.info(f"  {label}: {spec.formula()}")

        self.rmse = evaluate_rmse(data, specs, split)
        self.report.set_rmse(self.rmse)
        self.report.add_section('evaluation', {
            'n_train': split.n_train,
            'n_test': split.n_test,
            'seed': seed,
            'baseline_formula': specs['baseline'].formula(),
            'final_formula': specs['final'].formula(),
        })
        return self.rmse

    # ========================================================================
    # MAIN EXECUTION
    # ========================================================================

    def run(self) -> int:
        start_time = datetime.now()
        try:
            try:
                self.prepare_data()
            except Exception as e:
                self.logger.error(f"FATAL ERROR while preparing data: {e}")
                self.logger.error(traceback.format_exc())
                raise

            self.run_all_steps()
            self.run_evaluation()

            log_section(self.logger, "GENERATING OUTPUTS", "=")
            self.report.save()

            duration = datetime.now() - start_time
            self.logger.info("")
            self.logger.info("=" * 80)
            self.logger.info("REPORT COMPLETE")
            self.logger.info("=" * 80)
            self.logger.info(f"Total time: {duration}")
            for label, value in self.rmse.items():
                self.logger.info(f"RMSE ({label}): {value:.4f}")
            self.logger.info(f"Output directory: {self.output_dir}")
            self.logger.info("=" * 80)

            return 0  # Success

        except Exception as e:
            self.logger.error("")
            self.logger.error("=" * 80)
            self.logger.error("REPORT FAILED")
            self.logger.error("=" * 80)
            self.logger.error(str(e))
            self.logger.error("=" * 80)

            return 1  # Failure


def validate_configuration(config: Dict[str, Any]) -> Dict[str, Any]:
    """Check required fields and step references"""
    for field in REQUIRED_KEYS:
        if field not in config:
            raise ValueError(f"Missing required field in config: {field}")

    if 'input_path' not in config['data_settings']:
        raise ValueError("data_settings.input_path is required")

    names = set()
    for i, step in enumerate(config['model_steps']):
        if 'name' not in step or 'formula' not in step:
            raise ValueError(f"model_steps[{i}] needs 'name' and 'formula'")
        if step['name'] in names:
            raise ValueError(f"Duplicate model step name: {step['name']}")
        names.add(step['name'])

        boxcox_cfg = step.get('boxcox')
        response = step['formula'].get('response')
        if isinstance(boxcox_cfg, dict) and 'column' in boxcox_cfg and boxcox_cfg['column'] != response:
            raise ValueError(f"model_steps[{i}]: boxcox.column '{boxcox_cfg['column']}' "
                             f"must equal the formula response '{response}'")

    for key in ('baseline', 'final'):
        if key not in config['evaluation_settings']:
            raise ValueError(f"evaluation_settings.{key} is required")
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description='IMDb film rating regression report',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
    Examples:
    imdb-report                                   # Use Orchestrator.json
    imdb-report --config MyConfig.json            # Use custom configuration
    imdb-report --data data/imdb_parental.csv     # Override the input file
            """
    )

    parser.add_argument(
        '--config',
        type=str,
        default='Orchestrator.json',
        help='Path to JSON configuration file (default: Orchestrator.json)'
    )
    parser.add_argument(
        '--data',
        type=str,
        default=None,
        help='Path to the raw IMDb CSV (overrides data_settings.input_path)'
    )

    args = parser.parse_args(argv)

    try:
        pipeline = ReportPipeline(config_path=args.config, data_path=args.data)
        return pipeline.run()

    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        print()
        print("Please create a configuration file or specify --config")
        return 1

    except Exception as e:
        print(f"FATAL ERROR: {e}")
        print()
        print("See log file for details")
        return 1


if __name__ == "__main__":
    sys.exit(main())
