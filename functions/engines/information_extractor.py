"""Information extraction for the QuoteSmith conversation engine.

Pure functions that turn a free-text user message (Spanish or English)
into a delta of newly determined project details. The most recent
assistant message is used as context so short answers such as "6" or
"de madera" can be attributed to the pending question.
"""

import re
from typing import Dict, Any, Optional, List, Sequence, Tuple

from models.conversation import ChatMessage, MessageRole
from models.project import ProjectDetails
from engines.project_catalog import (
    ALL_MATERIAL_SYNONYMS,
    detect_project_type,
    get_project_spec,
    match_material,
)

NUMBER = r"(\d+(?:[.,]\d+)?)"
LENGTH_UNITS = r"(?:pies|pie|feet|foot|ft|metros|metro|m)\b\.?"
INCH_UNITS = r"(?:pulgadas|pulgada|inches|inch|in)\b\.?"

LENGTH_PATTERNS = [
    re.compile(NUMBER + r"\s*" + LENGTH_UNITS + r"\s*(?:de\s+)?(?:largo|longitud|length|long)\b", re.IGNORECASE),
    re.compile(r"\b(?:largo|longitud|length)\s*(?:de|is|es|of)?\s*" + NUMBER + r"\s*" + LENGTH_UNITS, re.IGNORECASE),
    re.compile(r"\b(?:necesito|quiero|para|for|of)\s*" + NUMBER + r"\s*" + LENGTH_UNITS + r"\s*(?:de\s+)?(?:cerca|fence|valla)", re.IGNORECASE),
]

HEIGHT_PATTERNS = [
    re.compile(NUMBER + r"\s*" + LENGTH_UNITS + r"\s*(?:de\s+)?(?:alto|altura|height|high|tall)\b", re.IGNORECASE),
    re.compile(r"\b(?:alto|altura|height)\s*(?:de|is|es|of)?\s*" + NUMBER + r"\s*" + LENGTH_UNITS, re.IGNORECASE),
]

AREA_PATTERNS = [
    re.compile(NUMBER + r"\s*(?:pies|pie|feet|foot|ft|metros|metro|m)\s*(?:cuadrados|cuadradas|cuadrado|squared|square|sq|\^2|²)", re.IGNORECASE),
    re.compile(NUMBER + r"\s*(?:sq\.?\s*ft|sqft)\b", re.IGNORECASE),
    re.compile(r"(?:área|area|superficie|surface|sq ft|square feet)\s*(?:de|is|es|of)?\s*" + NUMBER, re.IGNORECASE),
]

THICKNESS_PATTERNS = [
    re.compile(NUMBER + r"\s*" + INCH_UNITS + r"\s*(?:de\s+)?(?:grosor|espesor|thickness|thick)\b", re.IGNORECASE),
    re.compile(r"\b(?:grosor|espesor|thickness)\s*(?:de|is|es|of)?\s*" + NUMBER + r"\s*" + INCH_UNITS, re.IGNORECASE),
]

DIMENSION_PATTERNS: List[Tuple[str, List[re.Pattern]]] = [
    ("length", LENGTH_PATTERNS),
    ("height", HEIGHT_PATTERNS),
    ("squareFeet", AREA_PATTERNS),
    ("thickness", THICKNESS_PATTERNS),
]

BARE_NUMBER = re.compile(NUMBER)

SPELLED_NUMBERS: Dict[str, int] = {
    # Spanish
    "uno": 1, "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5,
    "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10,
    "once": 11, "doce": 12, "trece": 13, "catorce": 14, "quince": 15,
    "dieciséis": 16, "diecisiete": 17, "dieciocho": 18, "diecinueve": 19, "veinte": 20,
    "treinta": 30, "cuarenta": 40, "cincuenta": 50, "sesenta": 60, "setenta": 70,
    "ochenta": 80, "noventa": 90, "cien": 100,
    # English
    "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19, "twenty": 20,
    "thirty": 30, "forty": 40, "fifty": 50, "sixty": 60, "seventy": 70,
    "eighty": 80, "ninety": 90, "hundred": 100,
}

SPELLED_UNITS = r"\s*(?:pies|pie|feet|foot|ft)\s*(?:de\s+)?"
SPELLED_DIMENSION_WORDS = {
    "length": r"(?:largo|longitud|length|long)\b",
    "height": r"(?:alto|altura|height|high|tall)\b",
}

# Markers in the last assistant message that reveal the pending question
DIMENSION_MARKERS: Dict[str, Tuple[str, ...]] = {
    "length": ("longitud", "largo", "length", "long", "cuántos pies", "how many feet"),
    "height": ("altura", "alto", "height", "tall"),
    "squareFeet": ("área", "superficie", "area", "square feet", "pies cuadrados"),
    "thickness": ("grosor", "espesor", "thickness"),
}
DIMENSION_MARKER_PATTERNS: Dict[str, List[re.Pattern]] = {
    name: [re.compile(r"\b" + re.escape(marker) + r"\b") for marker in markers]
    for name, markers in DIMENSION_MARKERS.items()
}
MATERIAL_MARKERS = ("material", "tejas", "madera")
TYPE_MARKERS = ("tipo de proyecto", "qué proyecto", "project type", "what kind of project")

US_STATE_CODES = {
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "DC", "FL", "GA", "HI", "ID", "IL",
    "IN", "IA", "KS", "KY", "LA", "ME", "MD", "MA", "MI", "MN", "MS", "MO", "MT", "NE",
    "NV", "NH", "NJ", "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC", "SD",
    "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
}

US_STATE_NAMES: Dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "hawái": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS", "kentucky": "KY",
    "louisiana": "LA", "luisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "misuri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "nuevo hampshire": "NH", "new jersey": "NJ", "nueva jersey": "NJ",
    "new mexico": "NM", "nuevo méxico": "NM", "nuevo mexico": "NM",
    "new york": "NY", "nueva york": "NY",
    "north carolina": "NC", "carolina del norte": "NC",
    "north dakota": "ND", "dakota del norte": "ND",
    "ohio": "OH", "oklahoma": "OK", "oregon": "OR", "oregón": "OR",
    "pennsylvania": "PA", "pensilvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "carolina del sur": "SC",
    "south dakota": "SD", "dakota del sur": "SD",
    "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT", "virginia": "VA",
    "washington": "WA", "west virginia": "WV", "virginia occidental": "WV",
    "wisconsin": "WI", "wyoming": "WY",
}

# Longest first so "west virginia" wins over "virginia"
STATE_NAME_PATTERNS: List[Tuple[str, str, re.Pattern]] = [
    (name, code, re.compile(r"\b" + re.escape(name) + r"\b"))
    for name, code in sorted(US_STATE_NAMES.items(), key=lambda item: -len(item[0]))
]

CITY_CHARS = r"[A-Za-zÁÉÍÓÚÜÑáéíóúüñ .'-]"
CITY_STATE_PATTERN = re.compile(
    r"(?:\ben|\bin|ubicad[oa] en|localizad[oa] en|situad[oa] en|located in)\s+"
    r"(" + CITY_CHARS + r"+?),\s*([A-Za-z]{2})\b",
    re.IGNORECASE,
)
CITY_CONNECTORS = re.compile(r"\b(?:en|de|in)\b", re.IGNORECASE)


def parse_number(text: str) -> float:
    """Parse a number using '.' or ',' as decimal separator.

    A comma followed by exactly three digits is read as a thousands
    separator ("1,000" -> 1000).
    """
    if re.fullmatch(r"\d+,\d{3}", text):
        return float(text.replace(",", ""))
    return float(text.replace(",", "."))


def last_assistant_message(messages: Sequence[ChatMessage]) -> str:
    for message in reversed(messages):
        if message.role == MessageRole.ASSISTANT:
            return message.content
    return ""


def extract_dimensions(message: str) -> Dict[str, float]:
    """Parse explicitly phrased dimensions from a message."""
    dimensions: Dict[str, float] = {}

    for name, patterns in DIMENSION_PATTERNS:
        for pattern in patterns:
            match = pattern.search(message)
            if match:
                dimensions[name] = parse_number(match.group(1))
                break

    lower_message = message.lower()
    for name, words in SPELLED_DIMENSION_WORDS.items():
        if name in dimensions:
            continue
        for word, value in SPELLED_NUMBERS.items():
            if re.search(r"\b" + word + SPELLED_UNITS + words, lower_message):
                dimensions[name] = float(value)
                break

    return dimensions


def pending_dimensions(last_question: str) -> List[str]:
    """Get the dimensions a question mentions, in order of appearance."""
    lower_question = last_question.lower()
    positions = []
    for name, patterns in DIMENSION_MARKER_PATTERNS.items():
        found = [match.start() for match in (p.search(lower_question) for p in patterns) if match]
        if found:
            positions.append((min(found), name))
    return [name for _, name in sorted(positions)]


def extract_location(message: str) -> Optional[Dict[str, str]]:
    """Find a US city/state location in a message.

    Tries "<city>, <ST>" first, then full state names with the city
    back-filled from the words right before the state name.
    """
    match = CITY_STATE_PATTERN.search(message)
    if match and _is_state_code(match, message):
        city = _last_city_segment(match.group(1))
        location = {"state": match.group(2).upper()}
        if city:
            location["city"] = city
        return location

    lower_message = message.lower()
    for name, code, pattern in STATE_NAME_PATTERNS:
        if not pattern.search(lower_message):
            continue

        location = {"state": code}
        city_pattern = re.compile(
            r"(?:\ben|\bde|\bin)\s+(" + CITY_CHARS + r"+?)\s*,?\s+" + re.escape(name) + r"\b",
            re.IGNORECASE,
        )
        city_match = city_pattern.search(message)
        if city_match:
            city = _last_city_segment(city_match.group(1))
            if city:
                location["city"] = city
        return location

    return None


def _is_state_code(match: re.Match, message: str) -> bool:
    # Lower-case codes only count at the end of the message ("la" is also a word)
    code = match.group(2)
    if code.upper() not in US_STATE_CODES:
        return False
    return code.isupper() or match.end() == len(message.rstrip(" .!?"))


def _last_city_segment(text: str) -> Optional[str]:
    segments = [segment.strip(" ,.'-") for segment in CITY_CONNECTORS.split(text)]
    segments = [segment for segment in segments if segment]
    return segments[-1] if segments else None


def extract_project_info(
    message: str,
    existing_details: ProjectDetails,
    prior_messages: Sequence[ChatMessage] = ()
) -> Dict[str, Any]:
    """Extract newly determined project details from a user message.

    Type, material and location are only detected while unknown;
    dimensions are parsed from every message and returned key by key.

    Args:
        message: The user's message.
        existing_details: Details accumulated so far in the session.
        prior_messages: Session transcript; the latest assistant message
            identifies the pending question.

    Returns:
        Delta with only the fields determined from this message.
    """
    info: Dict[str, Any] = {}
    lower_message = message.lower()
    last_question = last_assistant_message(prior_messages).lower()

    # Project type
    if not existing_details.type:
        project_type = detect_project_type(lower_message)
        if not project_type and any(marker in last_question for marker in TYPE_MARKERS):
            project_type = detect_project_type(lower_message, contextual=True)
        if project_type:
            info["type"] = project_type

    # Material
    if not existing_details.material:
        spec = get_project_spec(existing_details.type or info.get("type"))
        material = spec.match_material(lower_message) if spec else None
        if not material and any(marker in last_question for marker in MATERIAL_MARKERS):
            material = match_material(lower_message, ALL_MATERIAL_SYNONYMS)
        if material:
            info["material"] = material

    # Dimensions
    dimensions = extract_dimensions(message)

    if not dimensions and last_question:
        bare_number = BARE_NUMBER.search(message)
        if bare_number:
            for name in pending_dimensions(last_question):
                if not existing_details.has_dimension(name):
                    dimensions[name] = parse_number(bare_number.group(1))
                    break

    project_type = existing_details.type or info.get("type")
    if project_type == "fencing" and ("length" in dimensions or "height" in dimensions):
        length = dimensions.get("length") or existing_details.dimensions.get("length")
        height = dimensions.get("height") or existing_details.dimensions.get("height")
        if (
            length
            and height
            and "squareFeet" not in dimensions
            and not existing_details.has_dimension("squareFeet")
        ):
            dimensions["squareFeet"] = length * height

    if dimensions:
        info["dimensions"] = dimensions

    # Location
    if existing_details.location is None or existing_details.location.is_empty():
        location = extract_location(message)
        if location:
            info["location"] = location

    return info
