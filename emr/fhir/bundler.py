"""
FHIR Bundle Assembler

Wraps query results in a search-set Bundle whose entries carry the
absolute URL of each resource.
"""
from typing import Any, Dict, List, Union
import uuid

from .resources import Bundle, BundleEntry, Patient, Appointment, Encounter

WireResource = Union[Patient, Appointment, Encounter]


def resource_url(base_url: str, resource: WireResource) -> str:
    """Absolute URL of a resource, e.g. http://host/fhir/Patient/{id}."""
    base_url = base_url if base_url.endswith("/") else base_url + "/"
    return f"{base_url}fhir/{resource.resourceType}/{resource.id}"


def generate_bundle_id() -> str:
    """Generate a unique bundle ID."""
    return str(uuid.uuid4())


class FHIRBundler:
    """
    Assembles FHIR resources into a search-set Bundle.
    
    Usage:
        bundler = FHIRBundler("http://localhost:8000/")
        bundler.add_resources(resources)
        payload = bundler.to_dict()
    """
    
    def __init__(self, base_url: str):
        """
        Initialize the bundler.
        
        Args:
            base_url: Server base URL used to build each entry's fullUrl
        """
        self.base_url = base_url
        self.entries: List[BundleEntry] = []

    def add_resource(self, resource: WireResource) -> None:
        """Add a resource to the bundle."""
        entry = BundleEntry(
            fullUrl=resource_url(self.base_url, resource),
            resource=resource
        )
        self.entries.append(entry)
    
    def add_resources(self, resources: List[WireResource]) -> None:
        """Add multiple resources to the bundle."""
        for resource in resources:
            self.add_resource(resource)
    
    def build(self, bundle_id: str = None) -> Bundle:
        """
        Build the final FHIR Bundle.
        
        Args:
            bundle_id: Optional bundle ID (generated if not provided)
            
        Returns:
            Search-set Bundle whose total matches the number of entries
        """
        return Bundle(
            id=bundle_id or generate_bundle_id(),
            type="searchset",
            total=len(self.entries),
            entry=self.entries
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Build and return the bundle as a JSON-ready dictionary."""
        return self.build().to_dict()
    
    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.entries)
