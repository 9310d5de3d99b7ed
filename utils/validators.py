from typing import Optional

from errors import ValidationError


class TextValidator:
    """Basic text checks for names coming in from the API or CLI."""

    @staticmethod
    def is_non_empty(text: Optional[str]) -> bool:
        if text is None:
            return False
        return bool(text.strip())

    @staticmethod
    def require_name(text: Optional[str], field: str = "name") -> str:
        """Return the trimmed value or raise ValidationError when blank."""
        if not isinstance(text, str) or not TextValidator.is_non_empty(text):
            raise ValidationError(f"{field} must not be empty.")
        return text.strip()


class AgeValidator:

    @staticmethod
    def require_age(age: Optional[int]) -> Optional[int]:
        if age is None:
            return None
        # bool is an int subclass; reject it explicitly
        if isinstance(age, bool) or not isinstance(age, int):
            raise ValidationError("age must be an integer.")
        if age < 0:
            raise ValidationError("age must not be negative.")
        return age
