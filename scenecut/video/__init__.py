"""Video analysis and extraction (ffprobe metadata, scene-cut detection, frame/clip engines, frame selection)."""

from scenecut.video.clip_extractor import ClipExtractor
from scenecut.video.cut_refiner import refine_cut_points
from scenecut.video.frame_extractor import FrameExtractor
from scenecut.video.frame_selector import FrameSelector
from scenecut.video.probe import probe_video_info
from scenecut.video.processor import ExtractionMode, VideoProcessor
from scenecut.video.scene_detector import detect_scene_changes

__all__ = [
    "ClipExtractor",
    "ExtractionMode",
    "FrameExtractor",
    "FrameSelector",
    "VideoProcessor",
    "detect_scene_changes",
    "probe_video_info",
    "refine_cut_points",
]
