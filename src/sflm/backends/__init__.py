"""Backends for SFLM output generation (CSV, plain text)."""

from .csv_export import generate_csv, save_csv_file
from .text_export import generate_text_copy

__all__ = ["generate_csv", "save_csv_file", "generate_text_copy"]
