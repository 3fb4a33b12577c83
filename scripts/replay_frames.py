from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from libs.core.application.alert_dispatcher import RetryPolicy
from libs.core.application.contracts import DetectionModel, IncidentContext
from libs.core.application.fire_monitor import FireMonitor, MonitorOptions
from libs.core.application.incident_machine import IncidentConfig
from libs.core.application.sampling_loop import SamplingConfig
from libs.infra.camera import DirectoryFrameSource
from libs.infra.detection_models import ColorOnlyDetectionModel, YoloDetectionModel
from libs.infra.http_notifier import HttpAlertNotifier
from services.api_gateway.infrastructure.memory_store import (
    InMemoryAlertRecordRepository,
)

logger = logging.getLogger("replay_frames")


class LogOnlyNotifier:
    """Dry-run notifier used when no backend is given."""

    async def notify(self, context: IncidentContext) -> None:
        logger.warning(
            "ALERT (dry run): incident=%s confidence=%.2f",
            context["incident_id"],
            context["confidence"],
        )


async def replay(args: argparse.Namespace) -> int:
    model: DetectionModel
    if args.model_path:
        model = YoloDetectionModel(args.model_path)
    else:
        model = ColorOnlyDetectionModel()

    notifier = (
        HttpAlertNotifier(api_base=args.api_base, token=args.token or None)
        if args.api_base
        else LogOnlyNotifier()
    )
    records = InMemoryAlertRecordRepository()
    monitor = FireMonitor(
        frame_source=DirectoryFrameSource(args.frames_dir),
        model=model,
        notifier=notifier,
        records=records,
        options=MonitorOptions(
            incident=IncidentConfig(
                confirmation_threshold=args.threshold,
                source_name=Path(args.frames_dir).name,
            ),
            sampling=SamplingConfig(refresh_hz=args.fps, grace_sec=0.0),
            retry=RetryPolicy(max_attempts=args.retries + 1),
            debounce_sec=0.0,
        ),
    )

    await monitor.start()
    try:
        while (monitor.stream_active or monitor.loop.busy) and monitor.model_ready:
            await asyncio.sleep(0.1)
        await monitor.dispatcher.wait_idle()
    finally:
        status = monitor.status()
        await monitor.aclose()
        if isinstance(notifier, HttpAlertNotifier):
            await notifier.aclose()

    print(
        f"[DONE] state={status.state} confidence={status.confidence_percent}% "
        f"alert_sent={status.alert_sent} ticks={status.ticks_processed} "
        f"failed={status.ticks_failed} skipped={status.refreshes_skipped}"
    )
    for record in records.list():
        print(f"[ALERT] {record.alert_id} status={record.status} attempts={record.attempts}")
    if status.model_error or status.camera_error:
        print(f"[ERROR] {status.model_error or status.camera_error}")
        return 1
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Replay a folder of frames through the fire detector"
    )
    parser.add_argument(
        "--frames-dir",
        required=True,
        help="Path to folder with PNG/JPG frames",
    )
    parser.add_argument(
        "--model-path",
        default="",
        help="Optional YOLO checkpoint; color heuristic only when omitted",
    )
    parser.add_argument(
        "--api-base",
        default="",
        help="Backend base URL; alerts are only logged when omitted",
    )
    parser.add_argument("--token", default="")
    parser.add_argument("--fps", type=float, default=10.0)
    parser.add_argument("--threshold", type=int, default=5)
    parser.add_argument("--retries", type=int, default=0)
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    if not Path(args.frames_dir).exists():
        raise SystemExit(f"frames dir not found: {args.frames_dir}")

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(replay(args)))


if __name__ == "__main__":
    main()
