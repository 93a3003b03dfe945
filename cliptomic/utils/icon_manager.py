"""
Icon Resource Manager

Loads tray icons for each application state from the resources directory,
drawing a clipboard glyph with PIL when no file is present.
"""

import io
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from PIL import Image, ImageDraw

from .. import IconState

logger = logging.getLogger(__name__)

# Outline colour per state; the idle grey reads on light and dark trays
STATE_COLORS = {
    IconState.IDLE: (108, 117, 125, 255),
    IconState.PROCESSING: (255, 152, 0, 255),
    IconState.ERROR: (244, 67, 54, 255),
    IconState.DISABLED: (158, 158, 158, 255),
}
ACCENT_COLOR = (255, 255, 255, 210)

# Relative lengths of the three text lines drawn inside the clipboard
LINE_LENGTHS = {
    IconState.IDLE: (1.0, 0.7, 0.9),
    IconState.PROCESSING: (0.9, 0.6, 0.8),
}


class IconManager:
    """
    Icon resource manager for the system tray.

    Generated icons are cached as PNG bytes per (state, size).
    """

    def __init__(self, resource_dir: Optional[Path] = None):
        """
        Initialize IconManager.

        Args:
            resource_dir: Directory containing icon resources
        """
        self.resource_dir = resource_dir or self._get_resource_dir()
        self.icon_cache: Dict[str, bytes] = {}

        self.icon_sizes = {
            'small': (16, 16),
            'tray': (64, 64),
        }

        logger.debug("IconManager initialized with resource directory: %s", self.resource_dir)

    def _get_resource_dir(self) -> Path:
        """Get the resource directory path."""
        if getattr(sys, 'frozen', False):
            # Running as PyInstaller executable
            base_dir = Path(getattr(sys, '_MEIPASS', Path(__file__).parent.parent.parent))
        else:
            base_dir = Path(__file__).parent.parent.parent

        return base_dir / "resources" / "icons"

    def get_icon_path(self, state: str) -> Optional[Path]:
        """Return ``tray_icon_<state>.png`` from the resource dir if it exists."""
        icon_path = self.resource_dir / f"tray_icon_{state}.png"
        if icon_path.exists():
            return icon_path
        return None

    def load_icon(self, state: str, size: str = "tray") -> bytes:
        """
        Load icon as PNG bytes.

        Args:
            state: Icon state
            size: Icon size category

        Returns:
            Icon data as bytes
        """
        cache_key = f"{state}_{size}"

        if cache_key in self.icon_cache:
            return self.icon_cache[cache_key]

        icon_data = None
        icon_path = self.get_icon_path(state)
        if icon_path is not None:
            icon_data = self._load_and_convert_icon(icon_path, size)

        if icon_data is None:
            icon_data = self._generate_icon(state, size)

        self.icon_cache[cache_key] = icon_data
        return icon_data

    def _load_and_convert_icon(self, icon_path: Path, size: str) -> Optional[bytes]:
        """Load a PNG from disk, resized to the target size."""
        target_size = self.icon_sizes[size]

        try:
            with Image.open(icon_path) as img:
                if img.mode != 'RGBA':
                    img = img.convert('RGBA')

                if img.size != target_size:
                    img = img.resize(target_size, Image.Resampling.LANCZOS)

                bio = io.BytesIO()
                img.save(bio, format='PNG')
                return bio.getvalue()

        except Exception as e:
            logger.error("Failed to load icon '%s', generating instead: %s", icon_path, e)
            return None

    def _generate_icon(self, state: str, size: str) -> bytes:
        """
        Draw a minimal clipboard glyph for the state.

        Args:
            state: Icon state
            size: Icon size category

        Returns:
            Generated icon as PNG bytes
        """
        width, height = self.icon_sizes[size]
        color = STATE_COLORS.get(state, STATE_COLORS[IconState.IDLE])
        stroke = max(1, width // 11)

        img = Image.new('RGBA', (width, height), (0, 0, 0, 0))
        draw = ImageDraw.Draw(img)

        board_w, board_h = width * 0.7, height * 0.8
        x0, y0 = (width - board_w) / 2, (height - board_h) / 2
        x1, y1 = x0 + board_w, y0 + board_h
        draw.rounded_rectangle([x0, y0, x1, y1], radius=max(1, width // 16),
                               outline=color, width=stroke)

        # Clip at the top
        clip_w, clip_h = width * 0.3, height * 0.15
        cx0 = (width - clip_w) / 2
        cy0 = y0 - clip_h * 0.3
        draw.rounded_rectangle([cx0, cy0, cx0 + clip_w, cy0 + clip_h],
                               radius=max(1, width // 32), fill=color)

        line_x0 = x0 + board_w * 0.2
        line_span = board_w * 0.6

        if state == IconState.ERROR:
            draw.line([line_x0, y0 + board_h * 0.3, line_x0 + line_span, y0 + board_h * 0.75],
                      fill=color, width=stroke)
            draw.line([line_x0 + line_span, y0 + board_h * 0.3, line_x0, y0 + board_h * 0.75],
                      fill=color, width=stroke)
        elif state == IconState.DISABLED:
            draw.line([x0, y1, x1, y0], fill=color, width=stroke)
        else:
            lengths = LINE_LENGTHS.get(state, LINE_LENGTHS[IconState.IDLE])
            for fraction, length in zip((0.3, 0.5, 0.7), lengths):
                line_y = y0 + board_h * fraction
                draw.line([line_x0, line_y, line_x0 + line_span * length, line_y],
                          fill=ACCENT_COLOR if state == IconState.IDLE else color,
                          width=max(1, stroke - 1))

        bio = io.BytesIO()
        img.save(bio, format='PNG')
        return bio.getvalue()

    def get_pil_image(self, state: str, size: str = "tray") -> Image.Image:
        """
        Get icon as PIL Image object.

        Args:
            state: Icon state
            size: Icon size category
        """
        return Image.open(io.BytesIO(self.load_icon(state, size)))

    def preload_icons(self, states: Optional[list] = None, size: str = "tray") -> None:
        """Generate and cache icons ahead of the first state change."""
        if states is None:
            states = list(STATE_COLORS)

        for state in states:
            self.load_icon(state, size)

        logger.debug("Preloaded %d icons", len(states))


# Global icon manager instance
_icon_manager: Optional[IconManager] = None


def get_icon_manager() -> IconManager:
    """
    Get the global IconManager instance.

    Returns:
        IconManager instance
    """
    global _icon_manager
    if _icon_manager is None:
        _icon_manager = IconManager()
    return _icon_manager
