"""mdbook-confluence: sync an mdbook chapter tree into a Confluence page tree."""

__version__ = "0.3.0"
