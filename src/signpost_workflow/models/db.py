from __future__ import annotations

from typing import Any

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class SignpostBaseDBModel(db.Model):  # type: ignore[name-defined]
    __abstract__ = True
    __allow_unmapped__ = True

    @classmethod
    def commit_with_rollback_on_exception(cls) -> None:
        try:
            db.session.commit()
        except Exception as db_error:
            db.session.rollback()
            raise db_error

    def validate_enum_field(self, key: str, value: Any, enum_variable: Any) -> Any:
        """Accept either an enum member or its value; store the value."""
        if isinstance(value, enum_variable):
            return value.value
        for member in enum_variable:
            if member.value == value:
                return member.value
        raise ValueError(f"{self.__class__.__name__}: invalid {key}: {value}")
