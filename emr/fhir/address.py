"""
Address Formatting

Renders a structured FHIR Address as a single display line, e.g.
"123 Main St, Apt 4B, New York, NY 10001, US".
"""
from typing import Any, Dict, List, Optional


def _field(address: Any, *names: str) -> str:
    """Read the first present attribute/key among `names` as a trimmed string."""
    for name in names:
        if isinstance(address, dict):
            value = address.get(name)
        else:
            value = getattr(address, name, None)
        if value is not None:
            return str(value).strip()
    return ""


def _lines(address: Any) -> List[str]:
    if isinstance(address, dict):
        lines = address.get("line")
    else:
        lines = getattr(address, "line", None)
    return [line.strip() for line in (lines or []) if line and line.strip()]


def format_address_text(address: Any) -> str:
    """
    Format an address into a human-readable string.
    
    Accepts a dict or any object with `line`, `city`, `state`,
    `postalCode` (or `postal_code`) and `country`.
    
    Args:
        address: Structured address, may be None
        
    Returns:
        "lines, city, state postal, country" with empty parts dropped
    """
    if not address:
        return ""
    
    parts = []
    
    street_lines = _lines(address)
    if street_lines:
        parts.append(", ".join(street_lines))
    
    city_state_parts = []
    city = _field(address, "city")
    if city:
        city_state_parts.append(city)
    
    # State and postal code share a segment: "NY 10001", "ON M5V 3A8"
    state_postal_parts = [
        part for part in (
            _field(address, "state"),
            _field(address, "postalCode", "postal_code"),
        ) if part
    ]
    if state_postal_parts:
        city_state_parts.append(" ".join(state_postal_parts))
    
    if city_state_parts:
        parts.append(", ".join(city_state_parts))
    
    country = _field(address, "country")
    if country:
        parts.append(country)
    
    return ", ".join(parts)


def create_formatted_address(address_data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Build a complete FHIR address dict with defaults and generated text."""
    if address_data is None:
        return None
    
    address = {
        "use": address_data.get("use") or "home",
        "type": address_data.get("type") or "physical",
        "line": address_data.get("line") or [],
        "city": address_data.get("city") or "",
        "district": address_data.get("district") or "",
        "state": address_data.get("state") or "",
        "postalCode": address_data.get("postalCode") or "",
        "country": address_data.get("country") or "",
    }
    address["text"] = format_address_text(address)
    return address
