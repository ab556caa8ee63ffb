"""
===============================================================================
TARJETA CRC — domain/timefmt.py
===============================================================================

Módulo:
    Layouts de fecha/hora por "instante de referencia" (Mon Jan 2 15:04:05 MST 2006)

Responsabilidades:
    - Formatear un datetime con un layout de referencia (format_time).
    - Parsear un string con el mismo layout (parse_time).
    - Proveer los layouts estándar usados en las vistas (KITCHEN, RFC1123, ...).

Colaboradores:
    - domain/validation.py: regla preference_value (round-trip del instante).
    - domain/responses.py: TimeResponse.

Notas:
    - Zonas sin nombre se formatean como -0700.
    - Al parsear, una abreviatura desconocida (MST, AKST, ...) queda registrada
      con offset 0 y su nombre preservado.
    - Componentes ausentes del layout toman el mínimo posible (año 1, enero, 1).
===============================================================================
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple

# Layouts estándar
ANSIC = "Mon Jan _2 15:04:05 2006"
KITCHEN = "3:04PM"
RFC1123 = "Mon, 02 Jan 2006 15:04:05 MST"
RFC3339 = "2006-01-02T15:04:05Z07:00"
DATE_ONLY = "2006-01-02"
TIME_ONLY = "15:04:05"

LONG_DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]
SHORT_DAY_NAMES = [d[:3] for d in LONG_DAY_NAMES]
LONG_MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]
SHORT_MONTH_NAMES = [m[:3] for m in LONG_MONTH_NAMES]

# Chunks del layout
STD_LONG_MONTH = "January"
STD_MONTH = "Jan"
STD_NUM_MONTH = "1"
STD_ZERO_MONTH = "01"
STD_LONG_WEEKDAY = "Monday"
STD_WEEKDAY = "Mon"
STD_DAY = "2"
STD_UNDER_DAY = "_2"
STD_ZERO_DAY = "02"
STD_UNDER_YEARDAY = "__2"
STD_ZERO_YEARDAY = "002"
STD_HOUR = "15"
STD_HOUR12 = "3"
STD_ZERO_HOUR12 = "03"
STD_MINUTE = "4"
STD_ZERO_MINUTE = "04"
STD_SECOND = "5"
STD_ZERO_SECOND = "05"
STD_LONG_YEAR = "2006"
STD_YEAR = "06"
STD_PM = "PM"
STD_LOWER_PM = "pm"
STD_TZ = "MST"
STD_FRAC = "frac"

# Offsets numéricos: (chunk, es_variante_Z, con_dos_puntos, con_minutos, con_segundos)
_NUMERIC_TZ = [
    ("-070000", False, False, True, True),
    ("-07:00:00", False, True, True, True),
    ("-0700", False, False, True, False),
    ("-07:00", False, True, True, False),
    ("-07", False, False, False, False),
    ("Z070000", True, False, True, True),
    ("Z07:00:00", True, True, True, True),
    ("Z0700", True, False, True, False),
    ("Z07:00", True, True, True, False),
    ("Z07", True, False, False, False),
]
_NUMERIC_TZ_BY_CHUNK = {spec[0]: spec for spec in _NUMERIC_TZ}

_UNNAMED_ZONE = re.compile(r"^UTC[+-]\d\d:\d\d")


@dataclass(frozen=True)
class _Chunk:
    kind: str  # "lit" o uno de los STD_* / chunk de offset
    text: str = ""
    digits: int = 0  # STD_FRAC: cantidad de dígitos
    trim: bool = False  # STD_FRAC: .999 recorta ceros
    sep: str = "."


def _starts_with_lower(s: str) -> bool:
    return bool(s) and "a" <= s[0] <= "z"


def _is_digit(s: str, i: int) -> bool:
    return i < len(s) and "0" <= s[i] <= "9"


def _next_chunk(layout: str) -> Tuple[str, Optional[_Chunk], str]:
    """Devuelve (prefijo literal, chunk, resto)."""
    i = 0
    n = len(layout)
    while i < n:
        c = layout[i]
        rest = layout[i:]
        if c == "J":
            if rest.startswith("January"):
                return layout[:i], _Chunk(STD_LONG_MONTH), layout[i + 7 :]
            if rest.startswith("Jan") and not _starts_with_lower(layout[i + 3 :]):
                return layout[:i], _Chunk(STD_MONTH), layout[i + 3 :]
        elif c == "M":
            if rest.startswith("Monday"):
                return layout[:i], _Chunk(STD_LONG_WEEKDAY), layout[i + 6 :]
            if rest.startswith("Mon") and not _starts_with_lower(layout[i + 3 :]):
                return layout[:i], _Chunk(STD_WEEKDAY), layout[i + 3 :]
            if rest.startswith("MST"):
                return layout[:i], _Chunk(STD_TZ), layout[i + 3 :]
        elif c == "0":
            if rest.startswith("002"):
                return layout[:i], _Chunk(STD_ZERO_YEARDAY), layout[i + 3 :]
            for std in (
                STD_ZERO_MONTH,
                STD_ZERO_DAY,
                STD_ZERO_HOUR12,
                STD_ZERO_MINUTE,
                STD_ZERO_SECOND,
                STD_YEAR,
            ):
                if rest.startswith(std):
                    return layout[:i], _Chunk(std), layout[i + 2 :]
        elif c == "1":
            if rest.startswith("15"):
                return layout[:i], _Chunk(STD_HOUR), layout[i + 2 :]
            return layout[:i], _Chunk(STD_NUM_MONTH), layout[i + 1 :]
        elif c == "2":
            if rest.startswith("2006"):
                return layout[:i], _Chunk(STD_LONG_YEAR), layout[i + 4 :]
            return layout[:i], _Chunk(STD_DAY), layout[i + 1 :]
        elif c == "_":
            if rest.startswith("_2"):
                # "_2006" es un "_" literal seguido del año.
                if rest.startswith("_2006"):
                    return layout[: i + 1], _Chunk(STD_LONG_YEAR), layout[i + 5 :]
                return layout[:i], _Chunk(STD_UNDER_DAY), layout[i + 2 :]
            if rest.startswith("__2"):
                return layout[:i], _Chunk(STD_UNDER_YEARDAY), layout[i + 3 :]
        elif c == "3":
            return layout[:i], _Chunk(STD_HOUR12), layout[i + 1 :]
        elif c == "4":
            return layout[:i], _Chunk(STD_MINUTE), layout[i + 1 :]
        elif c == "5":
            return layout[:i], _Chunk(STD_SECOND), layout[i + 1 :]
        elif c == "P":
            if rest.startswith("PM"):
                return layout[:i], _Chunk(STD_PM), layout[i + 2 :]
        elif c == "p":
            if rest.startswith("pm"):
                return layout[:i], _Chunk(STD_LOWER_PM), layout[i + 2 :]
        elif c in ("-", "Z"):
            for chunk, *_ in _NUMERIC_TZ:
                if chunk[0] == c and rest.startswith(chunk):
                    return layout[:i], _Chunk(chunk), layout[i + len(chunk) :]
        elif c in (".", ","):
            if i + 1 < n and layout[i + 1] in ("0", "9"):
                ch = layout[i + 1]
                j = i + 1
                while j < n and layout[j] == ch:
                    j += 1
                if not _is_digit(layout, j):
                    chunk = _Chunk(
                        STD_FRAC, digits=j - (i + 1), trim=(ch == "9"), sep=c
                    )
                    return layout[:i], chunk, layout[j:]
        i += 1
    return layout, None, ""


def _tokenize(layout: str) -> List[_Chunk]:
    chunks: List[_Chunk] = []
    while layout:
        prefix, chunk, layout = _next_chunk(layout)
        if prefix:
            chunks.append(_Chunk("lit", text=prefix))
        if chunk is None:
            break
        chunks.append(chunk)
    return chunks


# ---------------------------------------------------------------------------
# Formato
# ---------------------------------------------------------------------------


def zone_name(value: datetime) -> str:
    """Abreviatura de la zona; "" si la zona no tiene nombre (solo offset)."""
    if value.tzinfo is None:
        return "UTC"
    name = value.tzname() or ""
    if _UNNAMED_ZONE.match(name):
        return ""
    return name


def _offset_seconds(value: datetime) -> int:
    off = value.utcoffset()
    return int(off.total_seconds()) if off is not None else 0


def _format_offset(
    offset: int, *, colon: bool, minutes: bool, seconds: bool
) -> str:
    sign = "-" if offset < 0 else "+"
    absoffset = abs(offset)
    zone = absoffset // 60
    out = f"{sign}{zone // 60:02d}"
    if colon and minutes:
        out += ":"
    if minutes:
        out += f"{zone % 60:02d}"
    if seconds:
        if colon:
            out += ":"
        out += f"{absoffset % 60:02d}"
    return out


def _format_frac(nanos: int, chunk: _Chunk) -> str:
    digits = f"{nanos:09d}"[: chunk.digits]
    if chunk.trim:
        digits = digits.rstrip("0")
        if not digits:
            return ""
    return chunk.sep + digits


def format_time(value: datetime, layout: str) -> str:
    """Formatea `value` según el layout de referencia."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)

    out: List[str] = []
    for chunk in _tokenize(layout):
        k = chunk.kind
        if k == "lit":
            out.append(chunk.text)
        elif k == STD_YEAR:
            out.append(f"{value.year % 100:02d}")
        elif k == STD_LONG_YEAR:
            out.append(f"{value.year:04d}")
        elif k == STD_MONTH:
            out.append(SHORT_MONTH_NAMES[value.month - 1])
        elif k == STD_LONG_MONTH:
            out.append(LONG_MONTH_NAMES[value.month - 1])
        elif k == STD_NUM_MONTH:
            out.append(str(value.month))
        elif k == STD_ZERO_MONTH:
            out.append(f"{value.month:02d}")
        elif k == STD_WEEKDAY:
            out.append(SHORT_DAY_NAMES[value.isoweekday() % 7])
        elif k == STD_LONG_WEEKDAY:
            out.append(LONG_DAY_NAMES[value.isoweekday() % 7])
        elif k == STD_DAY:
            out.append(str(value.day))
        elif k == STD_UNDER_DAY:
            out.append(f"{value.day:2d}")
        elif k == STD_ZERO_DAY:
            out.append(f"{value.day:02d}")
        elif k == STD_UNDER_YEARDAY:
            out.append(f"{value.timetuple().tm_yday:3d}")
        elif k == STD_ZERO_YEARDAY:
            out.append(f"{value.timetuple().tm_yday:03d}")
        elif k == STD_HOUR:
            out.append(f"{value.hour:02d}")
        elif k in (STD_HOUR12, STD_ZERO_HOUR12):
            hr = value.hour % 12 or 12
            out.append(str(hr) if k == STD_HOUR12 else f"{hr:02d}")
        elif k == STD_MINUTE:
            out.append(str(value.minute))
        elif k == STD_ZERO_MINUTE:
            out.append(f"{value.minute:02d}")
        elif k == STD_SECOND:
            out.append(str(value.second))
        elif k == STD_ZERO_SECOND:
            out.append(f"{value.second:02d}")
        elif k == STD_PM:
            out.append("PM" if value.hour >= 12 else "AM")
        elif k == STD_LOWER_PM:
            out.append("pm" if value.hour >= 12 else "am")
        elif k == STD_TZ:
            name = zone_name(value)
            if name:
                out.append(name)
            else:
                out.append(
                    _format_offset(
                        _offset_seconds(value), colon=False, minutes=True, seconds=False
                    )
                )
        elif k in _NUMERIC_TZ_BY_CHUNK:
            _, is_z, colon, minutes, seconds = _NUMERIC_TZ_BY_CHUNK[k]
            offset = _offset_seconds(value)
            if offset == 0 and is_z:
                out.append("Z")
            else:
                out.append(
                    _format_offset(
                        offset, colon=colon, minutes=minutes, seconds=seconds
                    )
                )
        elif k == STD_FRAC:
            out.append(_format_frac(value.microsecond * 1000, chunk))
    return "".join(out)


# ---------------------------------------------------------------------------
# Parseo
# ---------------------------------------------------------------------------


class LayoutParseError(ValueError):
    """El valor no coincide con el layout (o un componente está fuera de rango)."""

    def __init__(self, layout: str, value: str, reason: str):
        self.layout = layout
        self.value = value
        self.reason = reason
        super().__init__(f"parsing {value!r} as {layout!r}: {reason}")


def _getnum(value: str, fixed: bool) -> Tuple[int, str]:
    if not _is_digit(value, 0):
        raise ValueError("bad number")
    if not _is_digit(value, 1):
        if fixed:
            raise ValueError("bad number")
        return int(value[0]), value[1:]
    return int(value[:2]), value[2:]


def _getnum3(value: str, fixed: bool) -> Tuple[int, str]:
    n = 0
    i = 0
    while i < 3 and _is_digit(value, i):
        n = n * 10 + int(value[i])
        i += 1
    if i == 0 or (fixed and i != 3):
        raise ValueError("bad number")
    return n, value[i:]


def _lookup(names: List[str], value: str) -> Tuple[int, str]:
    for idx, name in enumerate(names):
        if len(value) >= len(name) and value[: len(name)].lower() == name.lower():
            return idx, value[len(name) :]
    raise ValueError("bad name")


def _cutspace(s: str) -> str:
    return s.lstrip(" ")


def _skip(value: str, prefix: str) -> str:
    while prefix:
        if prefix[0] == " ":
            if value and value[0] != " ":
                raise ValueError("literal mismatch")
            prefix = _cutspace(prefix)
            value = _cutspace(value)
            continue
        if not value or value[0] != prefix[0]:
            raise ValueError("literal mismatch")
        prefix = prefix[1:]
        value = value[1:]
    return value


def _signed_offset_len(value: str) -> int:
    if not value or value[0] not in "+-":
        return 0
    i = 1
    while _is_digit(value, i):
        i += 1
    if i == 1 or int(value[1:i]) > 23:
        return 0
    return i


def _zone_abbrev_len(value: str) -> int:
    """Largo de una abreviatura de zona al inicio de `value` (0 = no parece zona)."""
    if len(value) < 3:
        return 0
    if len(value) >= 4 and value[:4] in ("ChST", "MeST"):
        return 4
    if value[:3] == "GMT":
        return 3 + _signed_offset_len(value[3:])
    if value[0] in "+-":
        return _signed_offset_len(value)
    upper = 0
    while upper < 6 and upper < len(value) and "A" <= value[upper] <= "Z":
        upper += 1
    if upper == 3:
        return 3
    if upper == 4 and (value[3] == "T" or value[:4] == "WITA"):
        return 4
    if upper == 5 and value[4] == "T":
        return 5
    return 0


def _parse_frac(value: str, n: int) -> int:
    """Microsegundos a partir de value[1:n] (value[0] es el separador)."""
    digits = value[1:n]
    if not digits.isdigit():
        raise ValueError("bad fractional second")
    return int((digits + "000000")[:6])


def parse_time(layout: str, value: str) -> datetime:
    """
    Parsea `value` con el layout de referencia.

    Raises:
        LayoutParseError: si no coincide o hay componentes fuera de rango.
    """
    original = value
    year, month, day, yday = 1, -1, -1, -1
    hour = minute = second = micro = 0
    pm_set = am_set = False
    zone_offset: Optional[int] = None
    zone_label = ""
    utc_forced = False

    chunks = _tokenize(layout)
    try:
        for idx, chunk in enumerate(chunks):
            k = chunk.kind
            if k == "lit":
                value = _skip(value, chunk.text)
            elif k == STD_YEAR:
                if len(value) < 2 or not value[:2].isdigit():
                    raise ValueError("bad year")
                yy = int(value[:2])
                year = yy + (1900 if yy >= 69 else 2000)
                value = value[2:]
            elif k == STD_LONG_YEAR:
                if len(value) < 4 or not value[:4].isdigit():
                    raise ValueError("bad year")
                year = int(value[:4])
                value = value[4:]
            elif k in (STD_MONTH, STD_LONG_MONTH):
                names = SHORT_MONTH_NAMES if k == STD_MONTH else LONG_MONTH_NAMES
                m, value = _lookup(names, value)
                month = m + 1
            elif k in (STD_NUM_MONTH, STD_ZERO_MONTH):
                month, value = _getnum(value, k == STD_ZERO_MONTH)
                if not 1 <= month <= 12:
                    raise ValueError("month out of range")
            elif k in (STD_WEEKDAY, STD_LONG_WEEKDAY):
                names = SHORT_DAY_NAMES if k == STD_WEEKDAY else LONG_DAY_NAMES
                _, value = _lookup(names, value)
            elif k in (STD_DAY, STD_UNDER_DAY, STD_ZERO_DAY):
                if k == STD_UNDER_DAY and value[:1] == " ":
                    value = value[1:]
                day, value = _getnum(value, k == STD_ZERO_DAY)
            elif k in (STD_UNDER_YEARDAY, STD_ZERO_YEARDAY):
                for _ in range(2):
                    if k == STD_UNDER_YEARDAY and value[:1] == " ":
                        value = value[1:]
                yday, value = _getnum3(value, k == STD_ZERO_YEARDAY)
                if not 1 <= yday <= 366:
                    raise ValueError("day-of-year out of range")
            elif k == STD_HOUR:
                hour, value = _getnum(value, False)
                if hour >= 24:
                    raise ValueError("hour out of range")
            elif k in (STD_HOUR12, STD_ZERO_HOUR12):
                hour, value = _getnum(value, k == STD_ZERO_HOUR12)
                if hour > 12:
                    raise ValueError("hour out of range")
            elif k in (STD_MINUTE, STD_ZERO_MINUTE):
                minute, value = _getnum(value, k == STD_ZERO_MINUTE)
                if minute >= 60:
                    raise ValueError("minute out of range")
            elif k in (STD_SECOND, STD_ZERO_SECOND):
                second, value = _getnum(value, k == STD_ZERO_SECOND)
                if second >= 60:
                    raise ValueError("second out of range")
                # Fracción implícita: "05" seguido de ".123" sin chunk de fracción.
                nxt = next((c for c in chunks[idx + 1 :] if c.kind != "lit"), None)
                if (
                    len(value) >= 2
                    and value[0] in ".,"
                    and _is_digit(value, 1)
                    and (nxt is None or nxt.kind != STD_FRAC)
                ):
                    n = 2
                    while _is_digit(value, n):
                        n += 1
                    micro = _parse_frac(value, n)
                    value = value[n:]
            elif k == STD_PM:
                if value[:2] == "PM":
                    pm_set = True
                elif value[:2] == "AM":
                    am_set = True
                else:
                    raise ValueError("bad AM/PM")
                value = value[2:]
            elif k == STD_LOWER_PM:
                if value[:2] == "pm":
                    pm_set = True
                elif value[:2] == "am":
                    am_set = True
                else:
                    raise ValueError("bad am/pm")
                value = value[2:]
            elif k in _NUMERIC_TZ_BY_CHUNK:
                _, is_z, colon, minutes, seconds = _NUMERIC_TZ_BY_CHUNK[k]
                if is_z and value[:1] == "Z":
                    value = value[1:]
                    utc_forced = True
                    continue
                zone_offset, value = _parse_offset(value, colon, minutes, seconds)
            elif k == STD_TZ:
                if value[:3] == "UTC":
                    utc_forced = True
                    value = value[3:]
                    continue
                n = _zone_abbrev_len(value)
                if n == 0:
                    raise ValueError("bad zone abbreviation")
                zone_label, value = value[:n], value[n:]
            elif k == STD_FRAC:
                if chunk.trim:
                    if len(value) < 2 or value[0] not in ".," or not _is_digit(value, 1):
                        continue
                    n = 1
                    while _is_digit(value, n):
                        n += 1
                    micro = _parse_frac(value, n)
                    value = value[n:]
                else:
                    n = 1 + chunk.digits
                    if len(value) < n or value[0] not in ".,":
                        raise ValueError("bad fractional second")
                    micro = _parse_frac(value, n)
                    value = value[n:]
        if value:
            raise ValueError(f"extra text {value!r}")

        if pm_set and hour < 12:
            hour += 12
        elif am_set and hour == 12:
            hour = 0

        if year < 1:
            raise ValueError("year out of range")

        if yday >= 0:
            resolved = date(year, 1, 1) + timedelta(days=yday - 1)
            if resolved.year != year:
                raise ValueError("day-of-year out of range")
            if month >= 0 and month != resolved.month:
                raise ValueError("day-of-year does not match month")
            if day >= 0 and day != resolved.day:
                raise ValueError("day-of-year does not match day")
            month, day = resolved.month, resolved.day
        else:
            if month < 0:
                month = 1
            if day < 0:
                day = 1

        tz = _resolve_zone(utc_forced, zone_offset, zone_label)
        return datetime(year, month, day, hour, minute, second, micro, tzinfo=tz)
    except ValueError as exc:
        if isinstance(exc, LayoutParseError):
            raise
        raise LayoutParseError(layout, original, str(exc)) from exc


def _parse_offset(
    value: str, colon: bool, minutes: bool, seconds: bool
) -> Tuple[int, str]:
    if colon and seconds:
        if len(value) < 9 or value[3] != ":" or value[6] != ":":
            raise ValueError("bad offset")
        sign, hh, mm, ss, rest = value[0], value[1:3], value[4:6], value[7:9], value[9:]
    elif colon:
        if len(value) < 6 or value[3] != ":":
            raise ValueError("bad offset")
        sign, hh, mm, ss, rest = value[0], value[1:3], value[4:6], "00", value[6:]
    elif seconds:
        if len(value) < 7:
            raise ValueError("bad offset")
        sign, hh, mm, ss, rest = value[0], value[1:3], value[3:5], value[5:7], value[7:]
    elif minutes:
        if len(value) < 5:
            raise ValueError("bad offset")
        sign, hh, mm, ss, rest = value[0], value[1:3], value[3:5], "00", value[5:]
    else:
        if len(value) < 3:
            raise ValueError("bad offset")
        sign, hh, mm, ss, rest = value[0], value[1:3], "00", "00", value[3:]

    for part in (hh, mm, ss):
        if not (len(part) == 2 and part.isdigit()):
            raise ValueError("bad offset")
    hr, mi, se = int(hh), int(mm), int(ss)
    if hr > 24 or mi > 60 or se > 60:
        raise ValueError("time zone offset out of range")
    offset = (hr * 60 + mi) * 60 + se
    if sign == "-":
        offset = -offset
    elif sign != "+":
        raise ValueError("bad offset sign")
    return offset, rest


def _resolve_zone(utc_forced: bool, offset: Optional[int], label: str) -> tzinfo:
    if utc_forced:
        return timezone.utc
    if offset is not None:
        if offset == 0 and label in ("", "UTC"):
            return timezone.utc
        delta = timedelta(seconds=offset)
        return timezone(delta, label) if label else timezone(delta)
    if label:
        fixed = 0
        if len(label) > 3 and label[:3] == "GMT":
            fixed = int(label[3:]) * 3600
        return timezone(timedelta(seconds=fixed), label)
    return timezone.utc
