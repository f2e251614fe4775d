"""Tool-environment building blocks: envar operations, HCL files, metadata and script checks."""

__version__ = "0.1.0"

__all__ = ["dao", "envars", "hclconfig", "scripts", "system"]