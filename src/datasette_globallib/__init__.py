"""Datasette plugin serving the globallib book-finding pipeline."""

from datasette_globallib.plugin import (
    extra_template_vars,
    register_routes,
    skip_csrf,
    startup,
)

__all__ = [
    "extra_template_vars",
    "register_routes",
    "skip_csrf",
    "startup",
]
