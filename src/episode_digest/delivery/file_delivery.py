"""
File delivery channel
"""
from pathlib import Path

from episode_digest.core.report import PeriodReport
from episode_digest.delivery.base import DeliveryChannel


class FileDelivery(DeliveryChannel):
    name = "file"

    def __init__(self, output_dir: str = "output"):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, report: PeriodReport) -> Path:
        window = report.run_window
        return self.output_dir / f"report_{window.window_start.isoformat()}_{window.window_end.isoformat()}.json"

    async def deliver(self, *, report: PeriodReport) -> None:
        self.path_for(report).write_text(report.model_dump_json(indent=2), encoding="utf-8")
