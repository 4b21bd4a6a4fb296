"""rascal - run HTTP requests described in JSON files."""

__version__ = "0.1.0"
