from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import face_recognition
import numpy as np


class FaceRecognitionScorer:
    """FaceScorer backed by face_recognition (dlib 128-d encodings).

    Encoding distance is mapped linearly so that distance 0 gives 100% and the
    match tolerance gives 70%, the confidence below which a match is flagged.
    """

    def __init__(self, resolve: Callable[[str], Optional[Path]], *, tolerance: float = 0.6):
        self._resolve = resolve
        self._tolerance = float(tolerance)

    def _encoding(self, url: str) -> np.ndarray:
        path = self._resolve(url)
        if path is None:
            raise FileNotFoundError(f"Photo not available locally: {url}")

        image = face_recognition.load_image_file(str(path))
        encodings = face_recognition.face_encodings(image)
        if not encodings:
            raise ValueError(f"No face found in {url}")
        return encodings[0]

    def score(self, reference_url: str, candidate_url: str) -> float:
        known = self._encoding(reference_url)
        unknown = self._encoding(candidate_url)
        distance = float(face_recognition.face_distance([known], unknown)[0])
        confidence = 100.0 - distance * (30.0 / self._tolerance)
        return round(float(np.clip(confidence, 0.0, 100.0)), 2)
