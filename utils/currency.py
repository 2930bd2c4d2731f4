# utils/currency.py
from typing import Union

# ----------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------

def clean_currency(val: Union[str, float, int, None]) -> float:
    """
    Cleans a currency string (e.g., "$140,000.00") into a float (140000.0).
    Empty input is 0.0; anything else unparseable raises ValueError.
    """
    if val is None or val == "":
        return 0.0
    if isinstance(val, (float, int)):
        return float(val)

    # Strip currency symbols and thousands separators, then convert to float.
    cleaned_val = str(val).replace('$', '').replace(',', '').strip()
    if not cleaned_val:
        return 0.0
    return float(cleaned_val)


def clean_percent(raw_input: Union[str, float, int, None]) -> Union[float, None]:
    """
    Cleans raw input (e.g., '0.23', '23%', '23') and converts it to a float
    where 1.0 represents 100%. An explicit '%' always divides by 100; a bare
    number above 1 is read as a percentage. Unparseable text raises ValueError.
    """
    if raw_input is None:
        return None

    if isinstance(raw_input, (float, int)):
        value = float(raw_input)
        return value / 100.0 if value > 1.0 else value

    s = str(raw_input).strip()
    if not s:
        return None

    explicit = s.endswith('%')
    numeric_val = float(s.replace('%', '').replace(',', '').replace(' ', ''))
    if explicit or numeric_val > 1.0:
        return numeric_val / 100.0
    return numeric_val


# ----------------------------------------------------------------------
# Formatting
# ----------------------------------------------------------------------

def format_percent_output(value: Union[float, None], decimal_places: int = 1) -> str:
    """Formats a float (0.23) to a display string ('23.0%')."""
    if value is None:
        return ""
    value = float(value)
    return f"{value * 100:.{decimal_places}f}%"


def format_currency_output(val, decimals=0):
    """
    Formats a float/int into a clean currency string ($1,234,567.00).

    Args:
        val (float): The numerical value to format.
        decimals (int): Number of decimal places.
    """
    if val is None:
        val = 0.0
    return f"${val:,.{decimals}f}"
