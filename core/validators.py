"""
Password policy used by ``AUTH_PASSWORD_VALIDATORS``.

Length is enforced by Django's ``MinimumLengthValidator``; this
validator adds the character-class requirements.
"""
from django.core.exceptions import ValidationError


class PasswordComplexityValidator:
    """Require a digit, a lowercase letter, an uppercase letter and a symbol."""

    rules = (
        ('password_requires_digit', str.isdigit, 'Passwords must have at least one digit (0-9).'),
        ('password_requires_lower', str.islower, "Passwords must have at least one lowercase ('a'-'z')."),
        ('password_requires_upper', str.isupper, "Passwords must have at least one uppercase ('A'-'Z')."),
        (
            'password_requires_non_alphanumeric',
            lambda ch: not ch.isalnum(),
            'Passwords must have at least one non alphanumeric character.',
        ),
    )

    def validate(self, password, user=None):
        errors = [
            ValidationError(message, code=code)
            for code, test, message in self.rules
            if not any(test(ch) for ch in password)
        ]
        if errors:
            raise ValidationError(errors)

    def get_help_text(self):
        return (
            'Your password must contain at least one digit, one lowercase letter, '
            'one uppercase letter and one non alphanumeric character.'
        )
