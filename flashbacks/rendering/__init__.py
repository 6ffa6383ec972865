"""Image composition for slides and collages."""

from flashbacks.rendering.composer import CollageComposer, CollageError, build_collage, render_slide
from flashbacks.rendering.orientation import needs_rotation, rotate_flags
from flashbacks.rendering.sampling import collage_count, pick_overview_files, pick_sequence_files

__all__ = [
    "CollageComposer",
    "CollageError",
    "build_collage",
    "collage_count",
    "needs_rotation",
    "pick_overview_files",
    "pick_sequence_files",
    "render_slide",
    "rotate_flags",
]
