from __future__ import annotations

import enum

import sqlalchemy as sa


def money(**kw) -> sa.Numeric:
    return sa.Numeric(12, 2, asdecimal=True, **kw)


def str_enum(enum_cls: type[enum.Enum], name: str) -> sa.Enum:
    """Stored as VARCHAR holding the enum *values*, portable across dialects."""
    return sa.Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=16,
        values_callable=lambda e: [m.value for m in e],
        validate_strings=True,
    )
