"""
report.py
=========
Collects per-model results and writes the report artifacts:

- summary.json              machine-readable summary of every model
- summary.txt               plain-text report
- coefficients_<model>.csv  coefficient table per model
- vif_<model>.csv           variance inflation table per model
- report_renewcommands.tex  LaTeX values for the write-up
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .base_model import FittedModel

logger = logging.getLogger(__name__)


def _number_to_word(num: int) -> str:
    """Convert number to word for LaTeX commands"""
    words = {
        0: 'Zero', 1: 'One', 2: 'Two', 3: 'Three', 4: 'Four', 5: 'Five',
        6: 'Six', 7: 'Seven', 8: 'Eight', 9: 'Nine', 10: 'Ten'
    }
    return words.get(num, str(num))


def latex_command_name(name: str) -> str:
    """model_3_trimmed -> ModelThreeTrimmed"""
    name = re.sub(r"\d+", lambda m: _number_to_word(int(m.group())), name)
    parts = re.split(r"[^A-Za-z]+", name)
    return ''.join(word[:1].upper() + word[1:] for word in parts if word)


class ReportWriter:
    """Accumulates model summaries and writes them to output_dir"""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.models: Dict[str, Dict[str, Any]] = {}
        self.tables: Dict[str, Dict[str, pd.DataFrame]] = {}
        self.sections: Dict[str, Any] = {}
        self.rmse: Dict[str, float] = {}

    def add_model(self, model: FittedModel, **extra: Any) -> Dict[str, Any]:
        entry = model.summary_dict()
        entry.update({k: v for k, v in extra.items() if v is not None})
        self.models[model.name] = entry
        self.tables.setdefault(model.name, {})['coefficients'] = model.coefficient_table()
        return entry

    def add_table(self, model_name: str, label: str, table: pd.DataFrame) -> None:
        self.tables.setdefault(model_name, {})[label] = table

    def add_section(self, key: str, value: Any) -> None:
        self.sections[key] = value

    def set_rmse(self, rmse: Dict[str, float]) -> None:
        self.rmse = dict(rmse)

    # ------------------------------------------------------------------------

    def save(self) -> List[Path]:
        written = [self._write_json(), self._write_tables(), self._write_latex(), self._write_text()]
        files = []
        for item in written:
            files.extend(item if isinstance(item, list) else [item])

        logger.info("Results saved:")
        for path in files:
            logger.info(f"  - {path}")
        return files

    def as_dict(self) -> Dict[str, Any]:
        return {
            'generated': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            **self.sections,
            'models': self.models,
            'rmse': self.rmse,
        }

    def _write_json(self) -> Path:
        path = self.output_dir / 'summary.json'
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.as_dict(), f, indent=2, default=str)
        return path

    def _write_tables(self) -> List[Path]:
        paths = []
        for model_name, tables in self.tables.items():
            slug = re.sub(r"\W+", "_", model_name).strip("_").lower()
            for label, table in tables.items():
                path = self.output_dir / f"{label}_{slug}.csv"
                table.to_csv(path, index=label == 'coefficients')
                paths.append(path)
        return paths

    def _write_latex(self) -> Path:
        path = self.output_dir / 'report_renewcommands.tex'
        with open(path, 'w', encoding='utf-8') as f:
            f.write("% IMDb rating report values\n")
            f.write(f"% Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")

            cleaning = self.sections.get('cleaning', {})
            for key in ('n_raw', 'n_clean', 'total_dropped'):
                if key in cleaning:
                    f.write(f"\\renewcommand{{\\Data{latex_command_name(key)}}}{{{cleaning[key]:,}}}\n")

            for model_name, entry in self.models.items():
                cmd = latex_command_name(model_name)
                f.write(f"\n% {model_name}\n")
                f.write(f"\\renewcommand{{\\{cmd}AdjRSquared}}{{{entry['adj_r_squared']:.4f}}}\n")
                f.write(f"\\renewcommand{{\\{cmd}AIC}}{{{entry['aic']:,.2f}}}\n")
                f.write(f"\\renewcommand{{\\{cmd}N}}{{{entry['n']:,}}}\n")
                if 'shapiro_p_value' in entry:
                    f.write(f"\\renewcommand{{\\{cmd}ShapiroP}}{{{entry['shapiro_p_value']:.4g}}}\n")
                if 'boxcox_lambda' in entry:
                    f.write(f"\\renewcommand{{\\{cmd}BoxCoxLambda}}{{{entry['boxcox_lambda']:.2f}}}\n")

            if self.rmse:
                f.write("\n% Held-out RMSE\n")
                for label, value in self.rmse.items():
                    f.write(f"\\renewcommand{{\\RMSE{latex_command_name(label)}}}{{{value:.4f}}}\n")
        return path

    def _write_text(self) -> Path:
        path = self.output_dir / 'summary.txt'
        lines = ["IMDb FILM RATING REGRESSION REPORT", "=" * 60]

        cleaning: Optional[Dict[str, int]] = self.sections.get('cleaning')
        if cleaning:
            lines.append("Data cleaning:")
            lines.extend(f"  {key}: {value:,}" for key, value in cleaning.items())
            lines.append("")

        for model_name, entry in self.models.items():
            lines.append(model_name)
            lines.append("-" * 60)
            lines.append(f"  Formula: {entry['formula']}")
            lines.append(f"  n = {entry['n']:,}, adj R^2 = {entry['adj_r_squared']:.4f}, AIC = {entry['aic']:,.2f}")
            if 'shapiro_p_value' in entry:
                decision = "rejected" if entry.get('reject_normality') else "not rejected"
                lines.append(f"  Shapiro-Wilk p = {entry['shapiro_p_value']:.4g} (normality {decision})")
            vif = self.tables.get(model_name, {}).get('vif')
            if vif is not None and not vif.empty:
                lines.append("  VIF:")
                for _, row in vif.iterrows():
                    lines.append(f"    {row['term']:35s} {row['vif']:10.3f}")
            lines.append("")

        if self.rmse:
            lines.append("Held-out RMSE")
            lines.append("-" * 60)
            lines.extend(f"  {label:30s} {value:.4f}" for label, value in self.rmse.items())

        path.write_text("\n".join(lines) + "\n", encoding='utf-8')
        return path
