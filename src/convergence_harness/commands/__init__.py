"""CLI command modules."""

from .lifecycle import scale_to_zero_cmd, wait_deleted_cmd

__all__ = ["scale_to_zero_cmd", "wait_deleted_cmd"]
