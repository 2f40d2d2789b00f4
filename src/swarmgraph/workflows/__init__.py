"""Built-in workflows; importing this package registers them."""

from . import critique

__all__ = ["critique"]
