from pydantic import Field

from .base import WireModel


class Vendor(WireModel):
    vendor_id: str
    vendor_name: str
    vendor_address: str = ""
    vendor_contact: str = ""
    term_of_payment: str = ""


class Product(WireModel):
    """A catalog product. Each product is supplied by exactly one vendor."""
    id: str
    name: str
    image_url: str = ""
    unit: str = ""
    price: float = Field(ge=0)
    vendor_id: str


class CompanyProfile(WireModel):
    """The purchasing legal entity printed on a purchase order."""
    profile_id: str
    company_name: str
    company_address: str = ""
    npwp: str = ""          # Indonesian tax registration number


class DeliveryAddress(WireModel):
    address_id: str
    address_label: str
    full_address: str
