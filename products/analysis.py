"""Best-effort image analysis from the uploaded file name.

No pixels are inspected. Keywords in the file name pick a category and item
type, a colour is taken from the name when present, and the remaining
attributes are guesses.
"""
import random
from typing import Any, Dict, List, Optional

DEFAULT_CATEGORY = 'Clothing'

# (keywords, category, item type), first match wins
KEYWORD_RULES = [
    (('shoe', 'sneaker', 'boot'), 'Footwear', 'Shoes'),
    (('bag', 'purse', 'backpack'), 'Bag', 'Handbag'),
    (('jacket', 'coat'), 'Clothing', 'Jacket'),
    (('shirt', 'tee'), 'Clothing', 'Shirt'),
    (('pant', 'jean', 'trouser'), 'Clothing', 'Pants')
]

NAMED_COLORS = ('black', 'blue', 'red', 'white')
FALLBACK_COLORS = ['Black', 'Blue', 'Gray', 'Brown', 'White']
MATERIALS = ['Cotton', 'Leather', 'Synthetic', 'Polyester', 'Wool']
STYLES = ['Casual', 'Formal', 'Sporty', 'Vintage', 'Modern']


def analyze_image(filename: Optional[str], rng: Optional[random.Random] = None) -> Dict[str, Any]:
    """Guess category and attributes for an image.

    Args:
        filename: Original name of the uploaded file
        rng: Random source for the guessed attributes

    Returns:
        Dict with ``category``, ``attributes`` (list of ``{type, value}``)
        and ``confidence``
    """
    rng = rng or random.Random()
    name = (filename or '').lower()

    category = DEFAULT_CATEGORY
    attributes: List[Dict[str, str]] = []

    for keywords, rule_category, item_type in KEYWORD_RULES:
        if any(keyword in name for keyword in keywords):
            category = rule_category
            attributes.append({'type': 'type', 'value': item_type})
            break

    color = next((c.capitalize() for c in NAMED_COLORS if c in name), None)
    if color is None:
        color = rng.choice(FALLBACK_COLORS)
    attributes.append({'type': 'color', 'value': color})
    attributes.append({'type': 'material', 'value': rng.choice(MATERIALS)})
    attributes.append({'type': 'style', 'value': rng.choice(STYLES)})

    return {
        'category': category,
        'attributes': attributes,
        'confidence': round(0.85 + rng.random() * 0.1, 2)
    }
