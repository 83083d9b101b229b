from typing import Any, Dict

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by the assignment and event tables."""

    def __repr__(self) -> str:
        class_name = self.__class__.__name__
        column_str = ", ".join(
            f"{c.name}={getattr(self, c.key)!r}" for c in self.__table__.columns
        )
        return f"{class_name}({column_str})"

    def to_dict(self) -> Dict[str, Any]:
        """Converts the ORM object to a dictionary keyed by attribute name."""
        return {c.key: getattr(self, c.key) for c in self.__table__.columns}
