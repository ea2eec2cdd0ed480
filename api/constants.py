"""Design styles and product-wide limits."""

from typing import Dict, List

LANDSCAPING_STYLES: List[Dict[str, str]] = [
    {
        "id": "modern",
        "name": "Modern",
        "description": "Clean lines, minimalist features, and a focus on natural materials.",
    },
    {
        "id": "minimalist",
        "name": "Minimalist",
        "description": "Extreme simplicity, open spaces, and a monochromatic color palette.",
    },
    {
        "id": "rustic",
        "name": "Rustic",
        "description": "Natural, rough-hewn materials like wood and stone for a cozy, country feel.",
    },
    {
        "id": "japanese",
        "name": "Japanese Garden",
        "description": "A serene design with rocks, water features, moss, and carefully pruned trees.",
    },
    {
        "id": "urban-modern",
        "name": "Urban Modern",
        "description": "Sleek design for small spaces, using planters, vertical gardens, and hardscapes.",
    },
    {
        "id": "english-cottage",
        "name": "English Cottage",
        "description": "A charmingly dense style packed with roses, climbing vines, and informal pathways.",
    },
    {
        "id": "mediterranean",
        "name": "Mediterranean",
        "description": "Gravel paths, terracotta pots, and plants like olive trees and lavender.",
    },
    {
        "id": "tropical",
        "name": "Tropical",
        "description": "Lush, dense foliage with vibrant flowers, large leaves, and exotic plants.",
    },
    {
        "id": "farmhouse",
        "name": "Farmhouse",
        "description": "A practical style with vegetable patches, picket fences, and informal flower beds.",
    },
    {
        "id": "coastal",
        "name": "Coastal",
        "description": "Beach-inspired elements like ornamental grasses, weathered wood, and hardy plants.",
    },
    {
        "id": "desert",
        "name": "Desert",
        "description": "Drought-tolerant plants like cacti and succulents, with gravel and rock features.",
    },
    {
        "id": "bohemian",
        "name": "Bohemian",
        "description": "A relaxed, eclectic mix of patterns, textures, and colorful, free-flowing plants.",
    },
]

STYLE_NAMES: Dict[str, str] = {s["id"]: s["name"] for s in LANDSCAPING_STYLES}
DEFAULT_STYLE = LANDSCAPING_STYLES[0]["id"]
MAX_SELECTED_STYLES = 2

DENSITIES = ("minimal", "default", "lush")

# Usage ledger
FREE_REDESIGN_LIMIT = 3
RATE_LIMIT_WINDOW_MS = 60 * 1000
MAX_ATTEMPTS_PER_WINDOW = 5
UNLIMITED = -1

# Upload validation
MAX_FILE_SIZE_MB = 10
MIN_ASPECT_RATIO = 1 / 3
MAX_ASPECT_RATIO = 3.0

# Object store folders
REDESIGN_SUBFOLDER = "redesigns"

FALLBACK_SUGGESTIONS = [
    "Try searching online for ideas",
    "Consider a contrasting feature",
    "Consult a local nursery",
]

SUBSCRIPTION_PERIOD_MS = 30 * 24 * 60 * 60 * 1000
