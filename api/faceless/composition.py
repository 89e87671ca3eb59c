"""Composition payload for the remote renderer (JSON2Video v2 movie format).

Everything here is pure: the same scenes and options always produce the same
payload, so a job that crashes between building and submitting re-submits an
identical movie.
"""
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from faceless.models import JobInput, ProcessedScene


Element = Dict[str, Any]

RESOLUTIONS: Dict[str, Tuple[int, int]] = {
    "9:16": (1080, 1920),
    "16:9": (1920, 1080),
    "1:1": (1080, 1080),
}
DEFAULT_ASPECT_RATIO = "9:16"

# Target length of one visual cut; longer narration gets more cuts.
CUT_TARGET_SEC = 4.0
# Offset between the asset pools of consecutive scenes.
ASSET_STRIDE = 3

CLICK_VOLUME = 0.4
MUSIC_VOLUME = 0.12

DEFAULT_CAPTION_STYLE = "bold-classic"

CAPTION_STYLES: Dict[str, Dict[str, Any]] = {
    "bold-classic": {
        "style": "classic",
        "font-family": "Bangers",
        "font-size": 120,
        "word-color": "#FFD700",
        "line-color": "#FFFFFF",
        "outline-color": "#000000",
        "outline-width": 2,
        "shadow-color": "#000000",
        "shadow-offset": 5,
        "position": "bottom-center",
        "max-words-per-line": 3,
    },
    "clean-cut": {
        "style": "classic-progressive",
        "font-family": "NotoSans Bold",
        "font-size": 80,
        "word-color": "#000000",
        "line-color": "#555555",
        "outline-color": "#FFFFFF",
        "outline-width": 4,
        "max-words-per-line": 3,
    },
    "modern-pop": {
        "style": "classic-progressive",
        "font-size": 75,
        "font-family": "Roboto",
        "font-weight": "900",
        "word-color": "#FFFF00",
        "line-color": "#FFFFFF",
        "outline-color": "#000000",
        "outline-width": 4,
        "position": "bottom-center",
        "max-words-per-line": 4,
    },
    "minimal": {
        "style": "classic",
        "font-size": 60,
        "font-family": "Arial",
        "word-color": "#FFFFFF",
        "line-color": "#FFFFFF",
        "outline-color": "#000000",
        "outline-width": 2,
        "position": "bottom-center",
        "max-words-per-line": 5,
    },
    "vibrant": {
        "style": "boxed-line",
        "font-size": 85,
        "font-family": "Oswald Bold",
        "word-color": "#FFD700",
        "box-color": "#FF4500DD",
        "position": "bottom-center",
        "max-words-per-line": 3,
        "all-caps": True,
    },
}


def caption_settings(style_name: Optional[str]) -> Dict[str, Any]:
    return dict(CAPTION_STYLES.get(style_name or "", CAPTION_STYLES[DEFAULT_CAPTION_STYLE]))


def resolution_for(aspect_ratio: Optional[str]) -> Tuple[int, int]:
    return RESOLUTIONS.get(aspect_ratio or "", RESOLUTIONS[DEFAULT_ASPECT_RATIO])


# Visual treatments: each takes a bare image element and returns a new one.


def _pan(direction: str) -> Callable[[Element], Element]:
    def treatment(element: Element) -> Element:
        return {**element, "zoom": 2, "pan": direction, "fade-in": 0.5, "fade-out": 0.3}

    treatment.__name__ = f"pan_{direction.replace('-', '_')}"
    return treatment


def zoom_in(element: Element) -> Element:
    return {**element, "zoom": 4, "fade-in": 0.5, "fade-out": 0.5}


def zoom_out(element: Element) -> Element:
    return {**element, "zoom": -3, "fade-in": 0.5, "fade-out": 0.5}


def drift_top_left(element: Element) -> Element:
    return {**element, "zoom": 3, "pan": "top-left", "pan-distance": 0.12, "fade-in": 0.4, "fade-out": 0.4}


def drift_bottom_right(element: Element) -> Element:
    return {**element, "zoom": 5, "pan": "bottom-right", "pan-distance": 0.1, "fade-in": 0.4, "fade-out": 0.4}


VISUAL_TREATMENTS: Tuple[Callable[[Element], Element], ...] = (
    _pan("left-right"),
    _pan("right-left"),
    _pan("top-bottom"),
    _pan("bottom-top"),
    zoom_in,
    drift_top_left,
    zoom_out,
    drift_bottom_right,
)


def treatment_for(index: int) -> Callable[[Element], Element]:
    return VISUAL_TREATMENTS[index % len(VISUAL_TREATMENTS)]


@dataclass(frozen=True)
class CompositionOptions:
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    enable_captions: bool = True
    caption_style: str = DEFAULT_CAPTION_STYLE
    enable_background_music: bool = False
    background_music_url: Optional[str] = None
    default_music_url: Optional[str] = None
    click_sound_url: Optional[str] = None
    webhook_url: Optional[str] = None
    movie_id: Optional[str] = None

    @classmethod
    def from_cursor(cls, cursor: JobInput, **overrides: Any) -> "CompositionOptions":
        return cls(
            aspect_ratio=cursor.aspect_ratio,
            enable_captions=cursor.enable_captions,
            caption_style=cursor.caption_style,
            enable_background_music=cursor.enable_background_music,
            background_music_url=cursor.background_music_url,
            **overrides,
        )


def _round(value: float) -> float:
    return round(value, 3)


def _scene_cuts(scene: ProcessedScene, position: int, pool: Sequence[str], click_url: Optional[str]) -> List[Element]:
    num_cuts = max(1, math.ceil(scene.duration / CUT_TARGET_SEC))
    cut_duration = scene.duration / num_cuts
    elements: List[Element] = []
    for k in range(num_cuts):
        src = pool[(position * ASSET_STRIDE + k) % len(pool)] if pool else scene.asset_url
        start = _round(k * cut_duration)
        image = {
            "type": "image",
            "src": src,
            "resize": "contain",
            "position": "center-center",
            "start": start,
            "duration": _round(cut_duration),
        }
        elements.append(treatment_for(position + k)(image))
        if click_url:
            elements.append({"type": "audio", "src": click_url, "start": start, "volume": CLICK_VOLUME})
    return elements


def build_scene(scene: ProcessedScene, position: int, pool: Sequence[str], click_url: Optional[str] = None) -> Dict[str, Any]:
    elements = _scene_cuts(scene, position, pool, click_url)
    elements.append({"type": "audio", "src": scene.audio_url, "volume": 1.0, "start": 0})
    return {
        "comment": f"Scene {position + 1}",
        "duration": _round(scene.duration),
        "background-color": "#000000",
        "elements": elements,
    }


def build_composition(
    scenes: Sequence[ProcessedScene],
    options: CompositionOptions,
    all_assets: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    if not scenes:
        raise ValueError("cannot compose a movie without scenes")
    width, height = resolution_for(options.aspect_ratio)
    pool = list(all_assets or [])
    ordered = sorted(scenes, key=lambda s: s.index)

    movie_elements: List[Element] = []
    music_url = options.background_music_url or options.default_music_url
    if options.enable_background_music and music_url:
        movie_elements.append(
            {
                "type": "audio",
                "src": music_url,
                "start": 0,
                "duration": -2,
                "volume": MUSIC_VOLUME,
                "fade-in": 1,
                "fade-out": 2,
                "loop": -1,
            }
        )
    if options.enable_captions:
        movie_elements.append(
            {"type": "subtitles", "language": "auto", "settings": caption_settings(options.caption_style)}
        )

    movie: Dict[str, Any] = {
        "resolution": "custom",
        "width": width,
        "height": height,
        "fps": 30,
        "quality": "high",
        "scenes": [build_scene(scene, i, pool, options.click_sound_url) for i, scene in enumerate(ordered)],
        "elements": movie_elements,
    }
    if options.movie_id:
        movie["id"] = options.movie_id
    if options.webhook_url:
        movie["exports"] = [{"destinations": [{"type": "webhook", "endpoint": options.webhook_url}]}]
    return movie
