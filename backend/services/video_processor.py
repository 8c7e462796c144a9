"""
Video Processor - Runs the perception pipeline over an uploaded interview video
"""

import logging
import os
from pathlib import Path
from typing import List, Set

import cv2
import numpy as np

from detection.pipeline import PerceptionPipeline
from models.detection_models import DetectionResult
from utils.errors import PerceptionError, ProcessingConflictError

logger = logging.getLogger(__name__)


class VideoProcessor:
    """
    Samples frames from a video and evaluates each one.

    At most one job runs per session; a second upload for a session that is
    still being processed raises ProcessingConflictError.
    """

    def __init__(self, pipeline: PerceptionPipeline, sample_frames: int = 10):
        self.pipeline = pipeline
        self.sample_frames = sample_frames
        self._processing: Set[str] = set()

    def is_processing(self, session_id: str) -> bool:
        return session_id in self._processing

    async def process_video(self, file_path: str, session_id: str) -> List[DetectionResult]:
        """
        Evaluate evenly spaced frames of a video.

        Args:
            file_path: Path to the uploaded video
            session_id: Session the video belongs to

        Returns:
            All detections of all sampled frames, as one batch
        """
        if session_id in self._processing:
            raise ProcessingConflictError(session_id)

        self._processing.add(session_id)
        try:
            logger.info(f"🎬 Starting video processing for session {session_id}")

            frames, frame_interval = self.extract_frames(file_path)

            all_detections: List[DetectionResult] = []
            for index, frame in enumerate(frames):
                try:
                    all_detections.extend(await self.pipeline.evaluate(frame, frame_interval))
                except PerceptionError as e:
                    # Skip the frame, keep processing the rest
                    logger.warning(f"Skipping frame {index} of session {session_id}: {e}")

            logger.info(
                f"🎬 Video processing completed for session {session_id}. "
                f"Found {len(all_detections)} detections in {len(frames)} frames."
            )
            return all_detections
        finally:
            self._processing.discard(session_id)

    def extract_frames(self, video_path: str):
        """
        Read up to sample_frames evenly distributed frames.

        Returns:
            (frames, seconds between sampled frames)
        """
        capture = cv2.VideoCapture(video_path)
        if not capture.isOpened():
            raise PerceptionError(f"Cannot open video {video_path}")

        try:
            total_frames = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
            fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
            if total_frames <= 0:
                raise PerceptionError(f"Video {video_path} has no frames")

            count = min(self.sample_frames, total_frames)
            positions = np.linspace(0, total_frames - 1, num=count, dtype=int)

            frames: List[np.ndarray] = []
            for position in positions:
                capture.set(cv2.CAP_PROP_POS_FRAMES, int(position))
                ok, frame = capture.read()
                if ok and frame is not None:
                    frames.append(frame)

            duration = total_frames / fps if fps > 0 else float(count)
            frame_interval = max(1.0, duration / max(1, count))
        finally:
            capture.release()

        logger.info(f"Extracted {len(frames)} frames from {video_path}")
        return frames, frame_interval

    @staticmethod
    def cleanup_file(file_path: str):
        """Remove an uploaded file once it has been processed"""
        path = Path(file_path)
        if path.exists():
            os.remove(path)
            logger.info(f"Cleaned up file: {file_path}")
