"""Enum conversion utilities"""

from enum import Enum
from typing import Dict, List, Optional, Type, TypeVar

# Generic type for any Enum subclass
E = TypeVar("E", bound=Enum)


class EnumHelper:
    """
    Utility class for working with Enums in config files and API payloads:
    - Parse strings back to enum members (case-insensitive, with aliases)
    - Convert enum members to strings
    - List all member names
    """

    @staticmethod
    def from_string(
        enum_class: Type[E],
        name: str,
        aliases: Optional[Dict[str, E]] = None,
        default: Optional[E] = None,
    ) -> E:
        """
        Parse string to Enum member, ignoring case.

        Args:
            enum_class: Enum class to parse into
            name: String name, e.g. "info" or "INFO"
            aliases: Extra lowercase spellings, e.g. {"warning": LogLevel.WARN}
            default: Return value if not found (None = raise)

        Returns:
            Enum member or default if provided
        """
        if isinstance(name, enum_class):
            return name
        if not isinstance(name, str):
            raise TypeError(f"Expected str or {enum_class.__name__}, got {type(name).__name__}")

        key = name.strip()
        if aliases and key.lower() in aliases:
            return aliases[key.lower()]

        for member in enum_class:
            if member.name.upper() == key.upper():
                return member

        if default is not None:
            return default
        valid = ", ".join(EnumHelper.list_names(enum_class, lowercase=True))
        raise ValueError(f"Invalid {enum_class.__name__} name: {name!r} (expected one of: {valid})")

    @staticmethod
    def list_names(enum_class: Type[E], lowercase: bool = False) -> List[str]:
        """List all Enum member names."""
        if lowercase:
            return [member.name.lower() for member in enum_class]
        return [member.name for member in enum_class]

    @staticmethod
    def to_name(value: Optional[Enum], lowercase: bool = False) -> Optional[str]:
        """Convert enum instance to string name (None passes through)"""
        if value is None:
            return None
        name = value.name
        return name.lower() if lowercase else name
