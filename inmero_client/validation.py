"""Client-side form checks. Every failure raises ValidationError before any request is made."""

import re
from typing import Optional

from .errors import ValidationError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DOCUMENT_LOGIN_RE = re.compile(r"^\d{6,}$")
DIGITS_RE = re.compile(r"^\d+$")
STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d@$!%*?&]{8,}$")


def require(value: Optional[str], field: str, message: str) -> str:
    if value is None or not value.strip():
        raise ValidationError(message, field=field)
    return value.strip()


def validate_email(email: Optional[str], field: str = "email") -> str:
    email = require(email, field, "Email es requerido")
    if not EMAIL_RE.match(email):
        raise ValidationError("Email inválido", field=field)
    return email


def validate_email_or_document(value: Optional[str], field: str = "email_or_document") -> str:
    value = require(value, field, "Email o documento requerido")
    if not (EMAIL_RE.match(value) or DOCUMENT_LOGIN_RE.match(value)):
        raise ValidationError("Email o documento inválido", field=field)
    return value


def validate_password_strength(password: Optional[str], field: str = "password") -> str:
    if not password:
        raise ValidationError("Contraseña es requerida", field=field)
    if not STRONG_PASSWORD_RE.match(password):
        raise ValidationError(
            "La contraseña debe tener al menos 8 caracteres, una mayúscula, una minúscula y un número",
            field=field,
        )
    return password


def validate_password_confirmation(password: str, confirmation: Optional[str], field: str = "confirm_password") -> None:
    if not confirmation:
        raise ValidationError("Confirmar contraseña es requerida", field=field)
    if password != confirmation:
        raise ValidationError("Las contraseñas no coinciden", field=field)


def validate_document_number(document_number: Optional[str], field: str = "document_number") -> str:
    document_number = require(document_number, field, "Número de documento es requerido")
    if not DIGITS_RE.match(document_number):
        raise ValidationError("El documento solo debe contener números", field=field)
    return document_number


def validate_rating(rating: Optional[float], field: str = "rating") -> float:
    if not rating or rating < 1 or rating > 5:
        raise ValidationError("Por favor selecciona una calificación", field=field)
    return float(rating)
