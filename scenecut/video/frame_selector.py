"""
Smart frame selection: reduce a set of extracted frames to a few representative, good-looking ones.

Each frame is scored on brightness, contrast (grayscale std), Laplacian sharpness, a normalized
grayscale histogram and a perceptual hash. Frames are grouped by complete-linkage agglomerative
clustering on (1 - similarity) until target_count clusters remain, and each cluster contributes
the member closest to the rest of the cluster, nudged towards higher quality.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import cv2
import imagehash
import numpy as np
from PIL import Image

from scenecut.models.entities import Artifact

_log = logging.getLogger(__name__)

DEFAULT_TARGET_COUNT = 10
ANALYSIS_SIZE = 256
PHASH_HASH_SIZE = 16
# Laplacian variance / grayscale std at which a frame counts as fully sharp / fully contrasted.
SHARPNESS_NORM = 100.0
CONTRAST_NORM = 50.0
QUALITY_WEIGHT = 0.1

HISTOGRAM_WEIGHT = 0.4
PHASH_WEIGHT = 0.35
BRIGHTNESS_WEIGHT = 0.25


@dataclass(frozen=True)
class FrameFeatures:
    artifact: Artifact
    brightness: float
    contrast: float
    sharpness: float
    histogram: np.ndarray
    phash: imagehash.ImageHash


@dataclass(frozen=True)
class SelectedFrame:
    """One representative frame and the cluster it stands for."""

    artifact: Artifact
    quality_score: float
    cluster_size: int
    member_indices: tuple[int, ...]


def _sharpness(gray: np.ndarray) -> float:
    """Laplacian variance (sharpness) of a grayscale image."""
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def analyze_frame(artifact: Artifact) -> FrameFeatures:
    """Load one frame image and compute its features. Raises OSError for unreadable images."""
    with Image.open(artifact.path) as img:
        rgb = img.convert("RGB")
    rgb.thumbnail((ANALYSIS_SIZE, ANALYSIS_SIZE))
    gray = cv2.cvtColor(np.asarray(rgb), cv2.COLOR_RGB2GRAY)
    histogram = cv2.calcHist([gray], [0], None, [256], [0, 256]).ravel()
    histogram = histogram / max(float(histogram.sum()), 1.0)
    return FrameFeatures(
        artifact=artifact,
        brightness=float(gray.mean()),
        contrast=float(gray.std()),
        sharpness=_sharpness(gray),
        histogram=histogram,
        phash=imagehash.phash(rgb, hash_size=PHASH_HASH_SIZE),
    )


def quality_score(features: FrameFeatures) -> float:
    """0..1: sharp, contrasted frames with mid-range brightness score highest."""
    sharpness = min(features.sharpness / SHARPNESS_NORM, 1.0)
    contrast = min(features.contrast / CONTRAST_NORM, 1.0)
    brightness = 1.0 - abs(features.brightness - 128.0) / 128.0
    return (sharpness + contrast + brightness) / 3.0


def similarity_matrix(features: Sequence[FrameFeatures]) -> np.ndarray:
    """Pairwise similarity in [0, 1]: weighted histogram cosine, pHash agreement and brightness."""
    n = len(features)
    if n == 0:
        return np.zeros((0, 0))
    hist = np.stack([f.histogram for f in features])
    norms = np.linalg.norm(hist, axis=1)
    norms[norms == 0] = 1.0
    unit = hist / norms[:, None]
    hist_sim = np.clip(unit @ unit.T, 0.0, 1.0)

    bits = features[0].phash.hash.size
    phash_sim = np.ones((n, n))
    for i in range(n):
        for j in range(i + 1, n):
            phash_sim[i, j] = phash_sim[j, i] = 1.0 - (features[i].phash - features[j].phash) / bits

    brightness = np.array([f.brightness for f in features])
    brightness_sim = 1.0 - np.abs(brightness[:, None] - brightness[None, :]) / 255.0

    return HISTOGRAM_WEIGHT * hist_sim + PHASH_WEIGHT * phash_sim + BRIGHTNESS_WEIGHT * brightness_sim


def cluster_frames(distance: np.ndarray, target_count: int) -> list[list[int]]:
    """Complete-linkage agglomerative clustering down to target_count clusters (order-stable)."""
    clusters = [[i] for i in range(len(distance))]
    while len(clusters) > max(target_count, 1):
        best: tuple[float, int, int] | None = None
        for a in range(len(clusters)):
            for b in range(a + 1, len(clusters)):
                d = float(distance[np.ix_(clusters[a], clusters[b])].max())
                if best is None or d < best[0]:
                    best = (d, a, b)
        _, a, b = best
        clusters[a] = clusters[a] + clusters[b]
        del clusters[b]
    return clusters


def pick_representative(members: list[int], distance: np.ndarray, scores: Sequence[float]) -> int:
    """Member with the smallest summed distance to the others, minus a small quality bonus."""
    return min(members, key=lambda m: float(distance[m, members].sum()) - QUALITY_WEIGHT * scores[m])


def select_frames(features: Sequence[FrameFeatures], target_count: int) -> list[SelectedFrame]:
    """Pick at most target_count representatives, best quality first."""
    if not features:
        return []
    distance = 1.0 - similarity_matrix(features)
    scores = [quality_score(f) for f in features]
    clusters = sorted(cluster_frames(distance, target_count), key=len, reverse=True)
    selected = []
    for members in clusters:
        rep = pick_representative(members, distance, scores)
        selected.append(
            SelectedFrame(
                artifact=features[rep].artifact,
                quality_score=scores[rep],
                cluster_size=len(members),
                member_indices=tuple(sorted(features[m].artifact.index for m in members)),
            )
        )
    selected.sort(key=lambda s: s.quality_score, reverse=True)
    return selected[:target_count]


class FrameSelector:
    """Analyzes extracted frames, picks representatives and copies them into a subfolder."""

    def __init__(self, target_count: int = DEFAULT_TARGET_COUNT) -> None:
        if target_count < 1:
            raise ValueError(f"target_count must be >= 1, got {target_count}")
        self.target_count = target_count

    def analyze(self, artifacts: Sequence[Artifact]) -> list[FrameFeatures]:
        features = []
        for artifact in artifacts:
            try:
                features.append(analyze_frame(artifact))
            except (OSError, ValueError, cv2.error) as e:
                _log.warning("Skipping frame %s in selection: %s", artifact.filename, e)
        return features

    def select(self, artifacts: Sequence[Artifact]) -> list[SelectedFrame]:
        features = self.analyze(artifacts)
        selected = select_frames(features, self.target_count)
        _log.info("Selected %d of %d frames (%d analyzable)", len(selected), len(artifacts), len(features))
        return selected

    def copy_selected(self, selected: Sequence[SelectedFrame], dest_dir: Path) -> list[Path]:
        """
        Copy representatives as <stem>_pick_NN_qQQ_cN<ext>: rank, quality percent, cluster size.

        Earlier picks in dest_dir are removed first so a re-run never mixes selections.
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        for old in dest_dir.glob("*_pick_*"):
            old.unlink()
        copied = []
        for rank, pick in enumerate(selected, start=1):
            src = pick.artifact.path
            stem = src.stem.rsplit("_frame_", 1)[0]
            name = f"{stem}_pick_{rank:02d}_q{round(pick.quality_score * 100)}_c{pick.cluster_size}{src.suffix}"
            dest = dest_dir / name
            shutil.copy2(src, dest)
            copied.append(dest)
        return copied
