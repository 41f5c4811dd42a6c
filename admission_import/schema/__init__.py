from .registry import DEFAULT_REGISTRY, SchemaRegistry, is_yes, normalize_label

__all__ = [
    "DEFAULT_REGISTRY",
    "SchemaRegistry",
    "is_yes",
    "normalize_label",
]
