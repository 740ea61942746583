"""
Render Module
=============

Everything that draws onto the Output buffer.

Components:
    - OverlayRenderer: links, markers and labels with optional glow
    - MatrixRain: optional glyph-rain overlay
    - PostEffectsChain: contrast, veil and bloom stages
    - TrailDecay: darken-and-lighten base compositing
    - fit_to_screen: letterboxed display fit
"""

from blobtrack.render.display import fit_rect, fit_to_screen
from blobtrack.render.effects import (
    Bloom,
    ColorVeil,
    ContrastBrightness,
    PostEffect,
    PostEffectsChain,
    TrailDecay,
    screen_blend,
)
from blobtrack.render.matrix import MatrixRain
from blobtrack.render.overlay import (
    INK_PALETTES,
    OverlayRenderer,
    OverlayStyle,
    font_height,
    format_label,
    label_origin,
    link_opacity,
    link_radius_for,
    marker_size,
)

__all__ = [
    # Overlay
    "INK_PALETTES",
    "OverlayRenderer",
    "OverlayStyle",
    "font_height",
    "format_label",
    "label_origin",
    "link_opacity",
    "link_radius_for",
    "marker_size",
    # Effects
    "PostEffect",
    "PostEffectsChain",
    "ContrastBrightness",
    "ColorVeil",
    "Bloom",
    "TrailDecay",
    "screen_blend",
    # Matrix
    "MatrixRain",
    # Display
    "fit_rect",
    "fit_to_screen",
]
