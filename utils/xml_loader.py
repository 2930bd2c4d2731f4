# utils/xml_loader.py
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any, Dict, Union

logger = logging.getLogger(__name__)

SECTIONS = ("primary", "spouse", "simulation")


def parse_setup_xml(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Flattens a setup file into one dict. Children of the <primary>, <spouse>
    and <simulation> sections are keyed ``<section>_<tag>``; everything else
    keeps its tag.
    """
    tree = ET.parse(file_path)
    root = tree.getroot()

    setup_dict: Dict[str, Any] = {}

    for child in root:
        if child.tag in SECTIONS:
            for sub in child:
                val = try_cast(sub.text)
                if sub.tag in ["gender", "health_status"] and isinstance(val, str):
                    val = val.strip().lower()
                setup_dict[f"{child.tag}_{sub.tag}"] = val
        else:
            val = try_cast(child.text)
            if child.tag in ["start_year", "rmd_start_age"]:
                val = int(val) if val is not None else val
            setup_dict[child.tag] = val

    return setup_dict


def try_cast(value: str) -> Any:
    """Try to convert string to int or float if possible, else leave as str."""
    if value is None:
        return None
    value = value.strip()
    # Booleans
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    # Integers (try first)
    if '.' not in value:
        try:
            return int(value)
        except ValueError:
            pass

    # Floats (try second)
    try:
        return float(value)
    except ValueError:
        pass

    return value  # Return as string if all else fails


CONFIG_DIR = Path(__file__).parent.parent / "config"

DEFAULT_SETUP = parse_setup_xml(CONFIG_DIR / "default_setup.xml")
