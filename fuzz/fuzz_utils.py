import sys

import atheris

with atheris.instrument_imports():
    from kiosk.utils import (
        coerce_bool,
        coerce_int,
        parse_bool,
        parse_float,
        parse_hhmm,
        parse_int,
        sanitize_hostname_for_topic,
        split_csv,
    )


def TestOneInput(data: bytes) -> None:
    """Fuzz utility parsing functions with arbitrary input."""
    value = data.decode("utf-8", errors="ignore")

    sanitize_hostname_for_topic(value)

    # Parsers with default fallbacks should never raise
    parse_bool(value)
    parse_int(value, default=0)
    parse_float(value, default=0.0)
    split_csv(value)
    coerce_bool(value, False)
    coerce_int(value, 0)

    parsed = parse_hhmm(value)
    if parsed is not None:
        hour, minute = parsed
        assert 0 <= hour <= 23 and 0 <= minute <= 59


def main() -> None:
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
