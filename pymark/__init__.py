"""PyMark: markdown macro expansion into Confluence storage format."""
