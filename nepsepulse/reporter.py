"""Excel and interactive HTML exports of a scrape result.

Records keep the exchange's text exactly as rendered ("1,250.00",
"1.21%"). For summaries and charts those cells are parsed leniently into
numbers; anything that does not parse becomes NaN and is left out of the
aggregates rather than failing the report.
"""

import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from config.settings import GlobalConfig, get_config
from nepsepulse.exceptions import ReportGenerationError
from nepsepulse.logger import get_logger
from nepsepulse.orchestrator import ScrapeResult
from nepsepulse.sources import Source

log = get_logger(__name__)

_NUMERIC_COLUMNS = (
    "ltp",
    "change",
    "percentChange",
    "open",
    "high",
    "low",
    "volume",
    "previousClose",
    "quantity",
    "rate",
    "amount",
)


def parse_number(value: Any) -> float:
    """Parse a NEPSE cell such as ``"1,250.00"``, ``"-1.21 %"`` or ``"(3.5)"``.

    Returns:
        The numeric value, or NaN if the cell holds no number.
    """
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return float("nan")

    cleaned = re.sub(r"[,%\s]", "", value)
    if cleaned.startswith("(") and cleaned.endswith(")"):
        cleaned = f"-{cleaned[1:-1]}"

    try:
        return float(cleaned)
    except ValueError:
        return float("nan")


class ReportGenerator:
    """Generates Excel and HTML reports from a ScrapeResult.

    Attributes:
        config: GlobalConfig instance for output paths.
        _timestamp: Report generation timestamp for file naming.

    Example:
        reporter = ReportGenerator(config)
        reporter.generate_all(result)
    """

    def __init__(self, config: GlobalConfig | None = None) -> None:
        self.config = config or get_config()
        self._timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")

    def _ensure_output_dir(self) -> Path:
        """Ensure output directory exists and return path.

        Raises:
            ReportGenerationError: If directory cannot be created.
        """
        try:
            self.config.output_dir.mkdir(parents=True, exist_ok=True)
            return self.config.output_dir
        except OSError as exc:
            raise ReportGenerationError(
                report_type="output_directory",
                reason=f"Cannot create output directory: {exc}",
                output_path=str(self.config.output_dir),
            ) from exc

    def to_dataframe(self, result: ScrapeResult) -> pd.DataFrame:
        """Flatten records into a DataFrame with wire column names.

        Numeric columns gain a ``<name>_num`` companion holding parsed values.
        """
        df = pd.DataFrame([record.to_wire() for record in result.records])
        for column in _NUMERIC_COLUMNS:
            if column in df.columns:
                df[f"{column}_num"] = df[column].map(parse_number)
        return df

    def _summary(self, result: ScrapeResult, df: pd.DataFrame) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "Report Generated": datetime.now(UTC).isoformat(),
            "Source": result.source.value,
            "Total Records": len(result.records),
            "Pages Visited": result.pages_visited,
            "Stop Reason": result.stop_reason.value if result.stop_reason else "cache",
            "Served From Cache": result.cached,
        }
        if "symbol" in df.columns:
            summary["Distinct Symbols"] = df["symbol"].nunique()
        if "percentChange_num" in df.columns:
            summary["Advancers"] = int((df["percentChange_num"] > 0).sum())
            summary["Decliners"] = int((df["percentChange_num"] < 0).sum())
        if "amount_num" in df.columns:
            summary["Total Amount"] = float(df["amount_num"].sum())
        return summary

    def generate_excel(self, result: ScrapeResult, filename: str | None = None) -> Path:
        """Write a workbook with a "Records" sheet and a "Summary" sheet.

        Raises:
            ReportGenerationError: If Excel generation fails.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"nepsepulse_{result.source.value}_{self._timestamp}"
        output_path = output_dir / f"{filename}.xlsx"

        log.info("Generating Excel report", output_path=str(output_path))

        try:
            df = self.to_dataframe(result)
            raw_columns = [c for c in df.columns if not c.endswith("_num")]

            with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
                df[raw_columns].to_excel(writer, sheet_name="Records", index=False)
                pd.DataFrame([self._summary(result, df)]).to_excel(
                    writer, sheet_name="Summary", index=False
                )
        except Exception as exc:
            raise ReportGenerationError(
                report_type="Excel",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info(
            "Excel report generated successfully",
            output_path=str(output_path),
            total_records=len(result.records),
        )
        return output_path

    def _price_figure(self, df: pd.DataFrame) -> go.Figure:
        movers = df.dropna(subset=["percentChange_num"]).sort_values("percentChange_num")
        fig = make_subplots(
            rows=2,
            cols=1,
            subplot_titles=("Percent Change by Symbol", "Volume by Symbol"),
            vertical_spacing=0.15,
        )
        fig.add_trace(
            go.Bar(
                x=movers["symbol"],
                y=movers["percentChange_num"],
                marker_color=[
                    "#27ae60" if v >= 0 else "#e74c3c" for v in movers["percentChange_num"]
                ],
                hovertemplate="<b>%{x}</b><br>Change: %{y:.2f}%<extra></extra>",
            ),
            row=1,
            col=1,
        )
        if "volume_num" in df.columns:
            by_volume = df.dropna(subset=["volume_num"]).nlargest(20, "volume_num")
            fig.add_trace(
                go.Bar(
                    x=by_volume["symbol"],
                    y=by_volume["volume_num"],
                    marker_color="#3498db",
                    hovertemplate="<b>%{x}</b><br>Volume: %{y:,.0f}<extra></extra>",
                ),
                row=2,
                col=1,
            )
        fig.update_yaxes(title_text="%", row=1, col=1)
        fig.update_yaxes(title_text="Shares", row=2, col=1)
        return fig

    def _floor_sheet_figure(self, df: pd.DataFrame) -> go.Figure:
        by_symbol = (
            df.groupby("symbol")[["amount_num", "quantity_num"]]
            .sum()
            .sort_values("amount_num", ascending=False)
            .head(20)
            .reset_index()
        )
        fig = make_subplots(
            rows=2,
            cols=1,
            subplot_titles=("Traded Amount by Symbol", "Traded Quantity by Symbol"),
            vertical_spacing=0.15,
        )
        fig.add_trace(
            go.Bar(x=by_symbol["symbol"], y=by_symbol["amount_num"], marker_color="#9b59b6"),
            row=1,
            col=1,
        )
        fig.add_trace(
            go.Bar(x=by_symbol["symbol"], y=by_symbol["quantity_num"], marker_color="#f39c12"),
            row=2,
            col=1,
        )
        return fig

    def generate_dashboard(self, result: ScrapeResult, filename: str | None = None) -> Path:
        """Write a standalone Plotly HTML dashboard.

        Raises:
            ReportGenerationError: If there is nothing to plot or writing fails.
        """
        output_dir = self._ensure_output_dir()
        filename = filename or f"nepsepulse_{result.source.value}_dashboard_{self._timestamp}"
        output_path = output_dir / f"{filename}.html"

        if not result.records:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason="No data available for visualization",
                output_path=str(output_path),
            )

        log.info("Generating HTML dashboard", output_path=str(output_path))

        try:
            df = self.to_dataframe(result)
            if result.source is Source.FLOOR_SHEET:
                fig = self._floor_sheet_figure(df)
            else:
                fig = self._price_figure(df)

            fig.update_layout(
                title={
                    "text": (
                        f"<b>NEPSE-Pulse: {result.source.value}</b><br>"
                        f"<sup>Records: {len(result.records)} | "
                        f"Generated: {datetime.now(UTC).strftime('%Y-%m-%d %H:%M UTC')}</sup>"
                    ),
                    "x": 0.5,
                    "xanchor": "center",
                },
                showlegend=False,
                height=800,
                template="plotly_white",
            )
            fig.write_html(str(output_path), include_plotlyjs=True, full_html=True)
        except Exception as exc:
            raise ReportGenerationError(
                report_type="Dashboard",
                reason=str(exc),
                output_path=str(output_path),
            ) from exc

        log.info("HTML dashboard generated successfully", output_path=str(output_path))
        return output_path

    def generate_all(self, result: ScrapeResult) -> dict[str, Path]:
        return {
            "excel": self.generate_excel(result),
            "dashboard": self.generate_dashboard(result),
        }
