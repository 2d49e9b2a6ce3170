from enum import Enum

from protean.exceptions import ValidationError


def parse_choice(enum_cls: type[Enum], value, field_name: str):
    """Look up an enum member by value or by member name (``"Picked_Up"`` or ``"PICKED_UP"``)."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        pass
    try:
        return enum_cls[str(value).upper()]
    except KeyError:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise ValidationError({field_name: [f"Unknown value '{value}'. Allowed: {allowed}"]}) from None
