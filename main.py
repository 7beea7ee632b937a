#!/usr/bin/env python3
"""
Talking Objects

Point a webcam at an object and it comes alive: it is identified by a
vision model and speaks about its surroundings in a chosen personality.

Usage:
    python main.py [--config CONFIG_PATH] [--device DEVICE_INDEX] [--personality NAME]

Keyboard Controls (window mode):
    SPACE - Start / stop watching
    1-6   - Personality (playful, grumpy, wise, excited, chill, fearful)
    C L S G - React: compliment, laugh, surprise, grumpy
    + / - - Motion sensitivity
    Q     - Quit

Environment:
    GEMINI_API_KEY (or GOOGLE_API_KEY), read from .env if present
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import yaml
from dotenv import load_dotenv
from loguru import logger

from talking_objects.capture import VideoCapture
from talking_objects.core.contracts import Personality, Reaction, TransitionPolicy
from talking_objects.inference import GeminiVision
from talking_objects.pipeline import PipelineConfig, PipelineOrchestrator
from talking_objects.presentation import CvOverlay, LoggingAmbient, LoggingOverlay, PacedPresenter


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()

    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# CONFIGURATION
# ============================================================

# settings.yaml section -> {yaml key: PipelineConfig field}
CONFIG_SECTIONS: Dict[str, Dict[str, str]] = {
    "scheduling": {
        "tick_interval": "tick_interval",
        "min_analysis_interval": "min_analysis_interval",
        "overlay_fps": "overlay_fps",
        "expression_seconds": "expression_seconds",
        "quota_cooldown_seconds": "quota_cooldown_seconds",
    },
    "behavior": {
        "transition_policy": "transition_policy",
        "personality": "personality",
        "retain_cache": "retain_cache",
        "context_size": "context_size",
        "history_size": "history_size",
    },
    "motion": {
        "pixel_threshold": "motion_pixel_threshold",
        "min_changed_fraction": "motion_min_changed_fraction",
        "mean_delta_threshold": "motion_mean_delta_threshold",
        "scale": "motion_scale",
        "channel": "motion_channel",
    },
    "similarity": {
        "threshold": "similarity_threshold",
        "fingerprint_length": "fingerprint_length",
    },
    "rate_limit": {
        "max_requests": "rate_limit_requests",
        "window_seconds": "rate_limit_window",
    },
    "cache": {
        "max_size": "cache_size",
        "ttl_seconds": "cache_ttl",
    },
    "locator": {
        "scale": "locator_scale",
        "edge_threshold": "locator_edge_threshold",
        "min_centrality": "locator_min_centrality",
        "min_edge_weight": "locator_min_edge_weight",
        "padding": "locator_padding",
        "outline_points": "outline_points",
    },
    "video": {
        "device_index": "video_device",
        "width": "video_width",
        "height": "video_height",
        "fps": "video_fps",
        "max_width": "capture_max_width",
        "jpeg_quality": "jpeg_quality",
    },
}


def load_settings(config_path: Optional[str]) -> dict:
    """Load configuration from file."""
    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            return yaml.safe_load(f) or {}

    default_path = Path(__file__).parent / "config" / "settings.yaml"
    if default_path.exists():
        with open(default_path) as f:
            return yaml.safe_load(f) or {}

    return {}


def build_pipeline_config(settings: Dict[str, Any]) -> PipelineConfig:
    """
    Map settings.yaml sections onto PipelineConfig.

    Missing sections and keys keep their dataclass defaults.
    """
    defaults = PipelineConfig()
    values: Dict[str, Any] = {}

    for section, mapping in CONFIG_SECTIONS.items():
        for key, value in (settings.get(section) or {}).items():
            name = mapping.get(key)
            if name is None:
                logger.warning(f"Unknown setting {section}.{key}")
                continue
            values[name] = value

    if "personality" in values:
        values["personality"] = Personality(values["personality"])
    if "transition_policy" in values:
        values["transition_policy"] = TransitionPolicy(values["transition_policy"])

    for name, value in values.items():
        default = getattr(defaults, name)
        if isinstance(default, bool) or isinstance(default, Enum):
            continue
        if isinstance(default, (int, float)):
            values[name] = type(default)(value)

    logger.debug(f"Loaded {len(values)} settings")
    return PipelineConfig(**values)


# ============================================================
# MAIN APPLICATION
# ============================================================

PERSONALITY_KEYS = {ord(str(i + 1)): p for i, p in enumerate(Personality)}

REACTION_KEYS = {
    ord("c"): Reaction.COMPLIMENT,
    ord("l"): Reaction.LAUGH,
    ord("s"): Reaction.SURPRISE,
    ord("g"): Reaction.GRUMPY,
}


class TalkingObjectsApp:
    """Main application class."""

    def __init__(
        self,
        config: PipelineConfig,
        gemini: Dict[str, Any],
        headless: bool = False,
        window_name: str = "Talking Objects",
    ):
        self.config = config
        self.headless = headless
        self.window_name = window_name

        self.source = VideoCapture(
            device_index=config.video_device,
            width=config.video_width,
            height=config.video_height,
            fps=config.video_fps,
            max_width=config.capture_max_width,
            jpeg_quality=config.jpeg_quality,
        )
        self.inference = GeminiVision(
            model=gemini.get("model", "gemini-2.0-flash"),
            temperature=gemini.get("temperature", 0.9),
            max_output_tokens=gemini.get("max_output_tokens", 80),
        )
        self.presenter = PacedPresenter()
        self.ambient = LoggingAmbient()
        self.overlay = LoggingOverlay() if headless else CvOverlay(expression_seconds=config.expression_seconds)

        self.pipeline = PipelineOrchestrator(
            source=self.source,
            inference=self.inference,
            presenter=self.presenter,
            ambient=self.ambient,
            overlay=self.overlay,
            config=config,
        )
        self._sensitivity = 5
        self._pending = set()

    def run(self):
        """Run the main application loop."""
        logger.info("Starting Talking Objects")
        try:
            asyncio.run(self._run())
        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            if not self.headless:
                cv2.destroyAllWindows()
            logger.info("Talking Objects stopped")

    async def _run(self):
        if not self.pipeline.start():
            logger.error("Failed to start pipeline")
            return

        try:
            if self.headless:
                while self.pipeline.is_running:
                    await asyncio.sleep(1.0)
            else:
                await self._display_loop()
        finally:
            self.pipeline.stop()

    async def _display_loop(self):
        cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
        period = 1.0 / max(1.0, self.config.overlay_fps)
        last_frame = None

        while True:
            bgr = self.source.read_preview()
            if bgr is not None:
                last_frame = bgr
            if last_frame is not None:
                display = last_frame.copy()
                h, w = display.shape[:2]
                scale = min(self.config.capture_max_width / w, 1.0)
                self.overlay.draw(display, (int(w * scale), int(h * scale)))
                cv2.imshow(self.window_name, display)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                break
            self._handle_key(key)
            await asyncio.sleep(period)

    def _handle_key(self, key: int):
        if key == ord(" "):
            if self.pipeline.is_running:
                self.pipeline.stop()
            else:
                self.pipeline.start()
        elif key in PERSONALITY_KEYS:
            self.pipeline.set_personality(PERSONALITY_KEYS[key])
        elif key in REACTION_KEYS:
            task = asyncio.get_running_loop().create_task(self.pipeline.react(REACTION_KEYS[key]))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        elif key in (ord("+"), ord("=")):
            self._sensitivity = min(10, self._sensitivity + 1)
            self.pipeline.set_motion_sensitivity(self._sensitivity)
        elif key == ord("-"):
            self._sensitivity = max(1, self._sensitivity - 1)
            self.pipeline.set_motion_sensitivity(self._sensitivity)


# ============================================================
# ENTRY POINT
# ============================================================

def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Talking Objects: webcam objects that talk back",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--device", "-d",
        type=int,
        default=None,
        help="Video device index (default: from config, else 0)",
    )

    parser.add_argument(
        "--personality", "-p",
        type=str,
        default=None,
        choices=[p.value for p in Personality],
        help="Object personality (default: from config, else playful)",
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run without a window; overlay output goes to the log",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default="logs/talking_objects.log",
        help="Log file path (default: logs/talking_objects.log)",
    )

    args = parser.parse_args()

    setup_logging(args.log_level, args.log_file)
    load_dotenv()

    settings = load_settings(args.config)
    config = build_pipeline_config(settings)
    if args.device is not None:
        config.video_device = args.device
    if args.personality is not None:
        config.personality = Personality(args.personality)

    try:
        app = TalkingObjectsApp(config, settings.get("gemini") or {}, headless=args.headless)
    except ValueError as e:
        logger.error(f"{e}. Set it in the environment or a .env file.")
        sys.exit(1)

    app.run()


if __name__ == "__main__":
    main()
