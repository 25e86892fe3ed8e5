"""infragraph: declarative resource graph materializer."""

__version__ = "0.1.0"
