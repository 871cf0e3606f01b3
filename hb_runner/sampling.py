"""
Background system profiling.

The sampler polls psutil counters on the workload's background thread until
its stop token trips, then summarizes the samples with pandas.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List

import pandas as pd
import psutil

from hb_runner.engine.stop_token import StopToken
from hb_runner.models.metrics import Metric, MetricRelativity

logger = logging.getLogger(__name__)

PROFILE_TOOL_NAME = "SystemProfile"

_UNITS = {
    "cpu_usage_percent": "%",
    "memory_usage_percent": "%",
    "disk_read_mbps": "MB/s",
    "disk_write_mbps": "MB/s",
    "network_sent_mbps": "MB/s",
    "network_recv_mbps": "MB/s",
}


class SystemSampler:
    """Collect CPU, memory, disk and network counters at a fixed interval."""

    def __init__(self, interval_seconds: float = 5.0, name: str = PROFILE_TOOL_NAME):
        self.name = name
        self.interval_seconds = interval_seconds
        self._data: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None

    def _collect_metrics(self) -> Dict[str, Any]:
        metrics: Dict[str, Any] = {
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory_usage": psutil.virtual_memory().percent,
        }
        disk_io = psutil.disk_io_counters()
        if disk_io is not None:
            metrics["disk_read_bytes"] = disk_io.read_bytes
            metrics["disk_write_bytes"] = disk_io.write_bytes
        net_io = psutil.net_io_counters()
        if net_io is not None:
            metrics["net_bytes_sent"] = net_io.bytes_sent
            metrics["net_bytes_recv"] = net_io.bytes_recv
        return metrics

    def sample(self) -> None:
        """Take one sample and store it with its timestamp."""
        metrics = self._collect_metrics()
        metrics["timestamp"] = datetime.now(timezone.utc).isoformat()
        with self._lock:
            self._data.append(metrics)

    def run(self, stop_token: StopToken) -> None:
        """Sample until ``stop_token`` trips; a stop is observed within one interval."""
        self.start_time = datetime.now(timezone.utc)
        logger.info("%s sampler started (interval %.1fs)", self.name, self.interval_seconds)
        # Prime cpu_percent so the first reading covers a real interval.
        psutil.cpu_percent(interval=None)
        while not stop_token.wait(self.interval_seconds):
            try:
                self.sample()
            except (psutil.Error, OSError) as exc:
                logger.error("Error in %s sampler: %s", self.name, exc)
        self.end_time = datetime.now(timezone.utc)
        logger.info("%s sampler stopped after %s samples", self.name, len(self._data))

    def get_data(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._data.copy()

    def get_dataframe(self) -> pd.DataFrame:
        data = self.get_data()
        if not data:
            return pd.DataFrame()
        df = pd.DataFrame(data)
        df["timestamp"] = pd.to_datetime(df["timestamp"])
        df.set_index("timestamp", inplace=True)
        return df

    def summarize(self) -> Dict[str, float]:
        return aggregate_samples(self.get_dataframe())

    def to_metrics(self) -> list[Metric]:
        metrics: list[Metric] = []
        for name, value in self.summarize().items():
            base = name.rsplit("_", 1)[0]
            metrics.append(
                Metric(
                    name=name,
                    value=float(value),
                    unit=_UNITS.get(base, ""),
                    relativity=MetricRelativity.NEUTRAL,
                )
            )
        return metrics


def _rate(df: pd.DataFrame, column: str) -> float:
    time_diff = (df.index[-1] - df.index[0]).total_seconds() if len(df) > 1 else 1
    if time_diff <= 0:
        time_diff = 1
    delta = df[column].iloc[-1] - df[column].iloc[0]
    return (delta / time_diff) / (1024 * 1024)


def aggregate_samples(df: pd.DataFrame) -> Dict[str, float]:
    """Reduce sampler data to averages, maxima and byte rates."""
    if df is None or df.empty:
        return {}

    summary: Dict[str, float] = {}
    if "cpu_percent" in df.columns:
        summary["cpu_usage_percent_avg"] = df["cpu_percent"].mean()
        summary["cpu_usage_percent_max"] = df["cpu_percent"].max()
        summary["cpu_usage_percent_p95"] = df["cpu_percent"].quantile(0.95)
    if "memory_usage" in df.columns:
        summary["memory_usage_percent_avg"] = df["memory_usage"].mean()
        summary["memory_usage_percent_max"] = df["memory_usage"].max()
    if "disk_read_bytes" in df.columns:
        summary["disk_read_mbps_avg"] = _rate(df, "disk_read_bytes")
        summary["disk_write_mbps_avg"] = _rate(df, "disk_write_bytes")
    if "net_bytes_sent" in df.columns:
        summary["network_sent_mbps_avg"] = _rate(df, "net_bytes_sent")
        summary["network_recv_mbps_avg"] = _rate(df, "net_bytes_recv")
    return summary
