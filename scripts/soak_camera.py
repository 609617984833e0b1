#!/usr/bin/env python3
"""
Camera Soak Script
==================

Runs CameraStream against a real camera and reports ingestion stats.

This script:
    1. Starts a CameraStream for the given URL
    2. Runs for a configurable duration
    3. Logs ingestion stats every report interval
    4. Reports a final summary

Usage:
    python scripts/soak_camera.py --url http://192.168.1.20:81/stream --duration 120
    python scripts/soak_camera.py --url http://cam/snapshot.jpg --mode jpeg --max-fps 2
"""

import argparse
import logging
import os
import sys
import threading
import time

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from camstream.models.status import TerminationReason
from camstream.stream import CameraStream, FrameBuffer, StreamConfig


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def run_soak(config: StreamConfig, duration: int, queue_size: int, report_interval: int) -> dict:
    """
    Ingest from the camera for `duration` seconds.

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info(f"Camera: {config.url} (mode={config.mode})")
    logger.info(f"Duration: {duration} seconds")
    logger.info("=" * 60)

    lost = threading.Event()

    def on_terminated(reason: TerminationReason) -> None:
        logger.info(f"Run finished: {reason.value}")
        if reason is TerminationReason.DEVICE_LOST:
            lost.set()

    stream = CameraStream(
        config,
        buffer=FrameBuffer(maxsize=queue_size),
        on_terminated=on_terminated,
    )

    start_time = time.time()
    last_report_time = start_time
    last_frame_count = 0

    with stream:
        stream.start()
        try:
            while time.time() - start_time < duration and not lost.is_set():
                # Keep the buffer from filling up
                while stream.frames.get_nowait() is not None:
                    pass

                time_since_report = time.time() - last_report_time
                if time_since_report >= report_interval:
                    metrics = stream.metrics
                    fps = (metrics.frames_emitted - last_frame_count) / time_since_report

                    logger.info("-" * 40)
                    logger.info(f"  Status: {stream.status.value}")
                    logger.info(f"  Frames: {metrics.frames_emitted} ({fps:.1f} fps)")
                    logger.info(f"  Connection attempts: {metrics.connection_attempts}")
                    logger.info(f"  Errors: {metrics.errors_total}")
                    logger.info(f"  Oversized drops: {metrics.frames_oversized}")

                    last_report_time = time.time()
                    last_frame_count = metrics.frames_emitted

                time.sleep(0.2)
        except KeyboardInterrupt:
            logger.info("Interrupted by user")

    total_time = time.time() - start_time
    metrics = stream.metrics
    avg_fps = metrics.frames_emitted / total_time if total_time > 0 else 0

    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Total runtime: {total_time:.1f} seconds")
    logger.info(f"Frames: {metrics.frames_emitted}")
    logger.info(f"Average FPS: {avg_fps:.1f}")
    logger.info(f"Bytes read: {metrics.bytes_read}")
    logger.info(f"Errors: {metrics.errors_total}")
    logger.info(f"Last termination: {stream.last_reason.value if stream.last_reason else None}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames": metrics.frames_emitted,
        "avg_fps": avg_fps,
        "errors": metrics.errors_total,
        "device_lost": lost.is_set(),
    }


def main():
    parser = argparse.ArgumentParser(description="Soak test a camera with CameraStream")
    parser.add_argument(
        "--url",
        type=str,
        default=os.environ.get("CAMSTREAM_URL", "http://192.168.1.20:81/stream"),
        help="Camera URL",
    )
    parser.add_argument("--login", type=str, default=os.environ.get("CAMSTREAM_LOGIN", ""))
    parser.add_argument("--password", type=str, default=os.environ.get("CAMSTREAM_PASSWORD", ""))
    parser.add_argument("--mode", choices=["multipart", "jpeg"], default="multipart")
    parser.add_argument("--max-fps", type=float, default=0.0)
    parser.add_argument("--http10", action="store_true", help="Send HTTP/1.0 requests")
    parser.add_argument(
        "--duration",
        type=int,
        default=120,
        help="Test duration in seconds (default: 120)",
    )
    parser.add_argument("--queue-size", type=int, default=50)
    parser.add_argument(
        "--report-interval",
        type=int,
        default=10,
        help="Seconds between progress reports (default: 10)",
    )

    args = parser.parse_args()

    config = StreamConfig.create(
        url=args.url,
        login=args.login,
        password=args.password,
        mode=args.mode,
        max_fps=args.max_fps,
        use_http10=args.http10,
    )
    result = run_soak(config, args.duration, args.queue_size, args.report_interval)

    sys.exit(0 if result["frames"] > 0 else 1)


if __name__ == "__main__":
    main()
