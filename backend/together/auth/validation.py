"""Registration input rules for emails and passwords."""
import re
from typing import Optional

EMAIL_REGEX = re.compile(r"^[\w-]+(\.[\w-]+)*@([a-zA-Z0-9-]+\.)+[a-zA-Z]{2,}$")

PASSWORD_REGEX = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)

MIN_PASSWORD_LENGTH = 8


def email_error(email: Optional[str]) -> Optional[str]:
    """Return a user-facing reason the email is unacceptable, or None."""
    if not email or not email.strip():
        return "Email is required"
    if not EMAIL_REGEX.match(email):
        return "Invalid email format. Please provide a valid email address"
    return None


def password_error(password: Optional[str]) -> Optional[str]:
    """Return a user-facing reason the password is unacceptable, or None."""
    if not password:
        return "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if not PASSWORD_REGEX.match(password):
        return (
            "Password must contain at least one uppercase letter, one lowercase "
            "letter, one number, and one special character"
        )
    return None
