from .decorators import contexto_required  # noqa: F401
from .sanitization import sanitizar_input  # noqa: F401 re-export for consumers

__all__ = ["sanitizar_input", "contexto_required"]
