"""
User-facing error messages.

Known error substrings map to localized texts; anything else falls back to a
generic message so internal details never reach a toast.
"""

ERROR_MESSAGES = {
    "insufficient budget": "No tienes suficiente presupuesto para esta apuesta.",
    "betting closed": "Las apuestas para este partido están cerradas.",
    "betting disabled": "Las apuestas no están disponibles para esta fecha.",
    "maintenance": "La aplicación está en mantenimiento. Inténtalo más tarde.",
    "duplicate fixture": "No se pueden combinar múltiples selecciones del mismo partido.",
    "too many selections": "Has superado el número máximo de selecciones por apuesta.",
    "minimum stake": "El importe es inferior a la apuesta mínima.",
    "maximum stake": "El importe supera la apuesta máxima de la liga.",
    "unsupported selection": "Este mercado no está disponible.",
    "not in a league": "Debes unirte a una liga para apostar.",
    "invalid join code": "El código de liga no es válido.",
    "already in a league": "Ya perteneces a una liga.",
    "bet not pending": "La apuesta ya no se puede cancelar.",
    "not found": "No se ha encontrado el recurso solicitado.",
    "unauthorized": "No tienes permisos para realizar esta acción.",
}

GENERIC_ERROR = "Ha ocurrido un error inesperado. Inténtalo de nuevo."


def friendly_error(message: str) -> str:
    lowered = (message or "").lower()
    for needle, text in ERROR_MESSAGES.items():
        if needle in lowered:
            return text
    return GENERIC_ERROR
