from __future__ import annotations

from datetime import datetime
from typing import Optional

FREQUENCIAS = {
    "4h": "4 em 4 horas",
    "6h": "6 em 6 horas",
    "8h": "8 em 8 horas",
    "12h": "12 em 12 horas",
    "12h_bis": "2 vezes ao dia",
    "24h": "1 vez ao dia",
}

# Plural das formas farmacêuticas mais comuns
_PLURAIS = {
    "comprimido": "comprimidos",
    "cápsula": "cápsulas",
    "capsula": "cápsulas",
    "pílula": "pílulas",
    "pilula": "pílulas",
    "gota": "gotas",
    "ml": "ml",
    "mg": "mg",
    "g": "g",
    "ampola": "ampolas",
    "frasco": "frascos",
    "sachê": "sachês",
    "sache": "sachês",
    "adesivo": "adesivos",
    "supositório": "supositórios",
    "supositorio": "supositórios",
    "spray": "sprays",
    "inalação": "inalações",
    "inalacao": "inalações",
    "aplicação": "aplicações",
    "aplicacao": "aplicações",
}


def format_time_24h(hora: Optional[str]) -> str:
    """Formata ``HH:MM`` como ``HHhMM``.

    Examples:
    - "12:35" -> "12h35"
    - "9:05" -> "09h05"
    - None -> ""
    """
    if not hora:
        return ""
    if ":" not in hora:
        return hora
    horas, minutos = hora.split(":", 1)
    return f"{horas.zfill(2)}h{minutos.zfill(2)}"


def parse_time_24h(texto: Optional[str]) -> str:
    """Inverso de :func:`format_time_24h` ("12h35" -> "12:35")."""
    if not texto or "h" not in texto:
        return texto or ""
    return texto.replace("h", ":", 1)


def format_frequencia(frequencia: Optional[str]) -> str:
    if not frequencia:
        return ""
    return FREQUENCIAS.get(frequencia, frequencia)


def forma_gramatical(forma: Optional[str], estoque: int) -> str:
    """Concordância da forma com o estoque (1 comprimido / 2 comprimidos)."""
    if not forma:
        return ""
    if estoque == 1:
        return forma
    return _PLURAIS.get(forma.strip().lower(), forma)


def format_datetime_br(dt: Optional[datetime]) -> str:
    """Format a datetime as dd/mm/YYYY HH:MM ("" for None)."""
    if dt is None:
        return ""
    return dt.strftime("%d/%m/%Y %H:%M")
