from __future__ import annotations

import argparse
from pathlib import Path

from libs.core.application.reconciler import DetectionReconciler
from libs.core.application.session_service import ComplianceSession
from libs.core.domain.entities import PERSON_CLASS
from libs.core.domain.errors import DetectionServiceError, FrameSourceError
from libs.core.domain.vocabulary import BUILTIN_VOCABULARIES, get_vocabulary
from libs.infra.http.detection_client import HttpDetectionClient
from libs.infra.video.frame_sampler import (
    FrameIntervalPolicy,
    count_samples,
    sample_video,
)
from services.api_gateway.infrastructure.memory_store import InMemoryDetectionStore


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("video", help="Path to the video file to analyze")
    parser.add_argument("--api-base", default="http://127.0.0.1:8000")
    parser.add_argument(
        "--vocabulary",
        default="six_class",
        choices=sorted(BUILTIN_VOCABULARIES),
    )
    parser.add_argument("--step", type=int, default=10)
    parser.add_argument(
        "--total-frames",
        type=int,
        default=100,
        help="Notional frame count; 0 uses the video's own frame count",
    )
    parser.add_argument("--fps", type=float, default=30.0)
    parser.add_argument("--min-confidence", type=float, default=0.5)
    parser.add_argument("--timeout", type=float, default=15.0)
    args = parser.parse_args()

    video_path = Path(args.video)
    if not video_path.exists():
        raise SystemExit(f"video not found: {video_path}")

    vocabulary = get_vocabulary(args.vocabulary)
    store = InMemoryDetectionStore()
    client = HttpDetectionClient(
        person_url=f"{args.api_base}/api/person-detector",
        ppe_url=f"{args.api_base}/api/ppe-detector",
        timeout_sec=args.timeout,
    )
    session = ComplianceSession(
        store=store,
        reconciler=DetectionReconciler(
            vocabulary=vocabulary,
            min_confidence=args.min_confidence,
        ),
        detector=client,
    )
    policy = FrameIntervalPolicy(
        step=args.step,
        total_frames=args.total_frames or None,
        nominal_fps=args.fps,
    )

    try:
        total = count_samples(video_path, policy)
        print(f"[INFO] video={video_path.name}, samples={total}")

        def on_progress(processed: int, frame_index: int) -> None:
            print(f"[FRAME {frame_index}] {processed}/{total}")

        session.analyze(
            sample_video(video_path, policy),
            total_samples=total,
            on_progress=on_progress,
        )
    except (DetectionServiceError, FrameSourceError) as error:
        raise SystemExit(f"[ERROR] analysis aborted: {error}") from error
    finally:
        client.close()

    severity = store.alert_severity_counts()
    print(f"[DONE] persons={store.count_by_class(PERSON_CLASS)}")
    print(
        "Alerts: "
        f"high={severity['high']} medium={severity['medium']} low={severity['low']}"
    )
    print(f"Overall compliance: {store.overall_compliance_rate():.1f}%")
    for class_name, rate in store.compliance_rates(vocabulary.classes).items():
        print(f"  {class_name}: {rate:.1f}%")


if __name__ == "__main__":
    main()
