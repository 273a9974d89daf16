# IMPORT CONSTRAINT: types/ modules must only import from typing, stdlib, and each other.
# NEVER import from core.py, db_base.py, or any mixin; that would create circular imports.
"""Typed return-value contracts for stagewise core and API layers."""

from __future__ import annotations

from stagewise.types.core import (
    AttachmentDict,
    ChronologyEntryDict,
    FieldResponseDict,
    ISOTimestamp,
    ProjectConfig,
    ProjectDict,
    TransitionRecordDict,
)

__all__ = [
    "AttachmentDict",
    "ChronologyEntryDict",
    "FieldResponseDict",
    "ISOTimestamp",
    "ProjectConfig",
    "ProjectDict",
    "TransitionRecordDict",
]
