"""Built-in workflow definitions."""

from src.workflows.definitions import (
    generate_auto_reel,
    generate_final_video,
    generate_scripts,
    parse_listing,
)

ALL_DEFINITIONS = [
    parse_listing.DEFINITION,
    generate_scripts.DEFINITION,
    generate_auto_reel.DEFINITION,
    generate_final_video.DEFINITION,
]
