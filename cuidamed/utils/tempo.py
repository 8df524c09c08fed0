from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

FUSO_FALLBACK = "America/Sao_Paulo"


def obter_fuso(nome: str | None = None) -> tzinfo:
    """Resolve um fuso IANA; inválido ou ausente cai no padrão da app."""
    padrao = FUSO_FALLBACK
    if has_app_context():
        padrao = current_app.config.get("TIMEZONE_PADRAO") or FUSO_FALLBACK
    for candidato in (nome, padrao):
        if not candidato:
            continue
        try:
            return ZoneInfo(candidato)
        except (ZoneInfoNotFoundError, ValueError):
            if has_app_context():
                current_app.logger.warning(f"Fuso inválido: {candidato!r}")
    return timezone.utc


def como_utc(dt: datetime | None) -> datetime | None:
    """Datetime aware em UTC (naive é tratado como UTC, como no SQLite)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_to_utc(value: str | None) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware UTC datetime.

    - Accepts offsets like +00:00 and a trailing 'Z'.
    - If input is naive (no tzinfo), assumes it is UTC.
    """
    if value is None:
        raise ValueError("value is None")
    value = value.strip()
    if not value:
        raise ValueError("empty datetime value")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    # Naive é tratado como UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_data(value: str | None) -> date | None:
    if not value:
        return None
    v = value.strip()
    # ISO primeiro (YYYY-MM-DD), depois formato BR
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Data inválida: {value!r}")


def hoje_local(tz: tzinfo, agora: datetime | None = None) -> date:
    agora = como_utc(agora) or datetime.now(timezone.utc)
    return agora.astimezone(tz).date()


def limites_dia(dia: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Início (inclusivo) e fim (exclusivo) do dia local, em UTC."""
    inicio = datetime.combine(dia, time.min, tzinfo=tz)
    fim = datetime.combine(dia + timedelta(days=1), time.min, tzinfo=tz)
    return inicio.astimezone(timezone.utc), fim.astimezone(timezone.utc)


def hora_local_para_utc(dia: date, hora: str, tz: tzinfo) -> datetime:
    """``dia`` + ``HH:MM`` no fuso ``tz`` convertido para UTC."""
    horas, minutos = (int(p) for p in hora.split(":"))
    local = datetime.combine(dia, time(horas, minutos), tzinfo=tz)
    return local.astimezone(timezone.utc)
