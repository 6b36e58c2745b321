"""Category tables and test id assignment."""
from .categories import (
    CATEGORY_TAGS,
    DEFAULT_ID_PREFIX,
    VALID_SUBCATEGORIES,
    TestIdAllocator,
    is_imaging,
    is_valid_category,
    is_valid_subcategory,
    subcategories_for,
)

__all__ = [
    "CATEGORY_TAGS",
    "DEFAULT_ID_PREFIX",
    "VALID_SUBCATEGORIES",
    "TestIdAllocator",
    "is_imaging",
    "is_valid_category",
    "is_valid_subcategory",
    "subcategories_for",
]
