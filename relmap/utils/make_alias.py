"""Derive a table alias from a table name."""

import inflection


def make_alias(name: str) -> str:
    """Singularize the segment after the last underscore (e.g. `site_nodes` -> `node`)."""
    return inflection.singularize(name.rsplit("_", 1)[-1])
