"""
Purchase order export rendering.
"""
import logging
from pathlib import Path
from typing import Optional

from jinja2 import BaseLoader, Environment, FileSystemLoader

from models.master_data import CompanyProfile, Vendor
from models.purchase_order import PurchaseOrder
from workflow.formatting import format_currency

logger = logging.getLogger(__name__)


# Default XML export template
DEFAULT_PO_XML_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!--
  Purchase order export template — set EXPORT_TEMPLATE to a .xml.j2 file to customise.
  Template engine : Jinja2  (https://jinja.palletsprojects.com/)
  Values are XML-escaped automatically.

  Variables:
    po        — dict: po_id, vendor_id, vendor_name, date_issued, line_items,
                total_amount, related_budget_ids, company_profile_id, delivery_address
    vendor    — dict of the vendor master record, or empty
    company   — dict of the company profile, or empty
    currency  — filter: amount → display string
-->
<PurchaseOrder id="{{ po.po_id }}">
  <DateIssued>{{ po.date_issued }}</DateIssued>
  <Vendor id="{{ po.vendor_id }}">
    <Name>{{ vendor.vendor_name or po.vendor_name }}</Name>
    {% if vendor.vendor_address %}<Address>{{ vendor.vendor_address }}</Address>
    {% endif %}
    {% if vendor.vendor_contact %}<Contact>{{ vendor.vendor_contact }}</Contact>
    {% endif %}
    {% if vendor.term_of_payment %}<TermOfPayment>{{ vendor.term_of_payment }}</TermOfPayment>
    {% endif %}
  </Vendor>
  <Buyer id="{{ po.company_profile_id }}">
    {% if company.company_name %}<Name>{{ company.company_name }}</Name>
    {% endif %}
    {% if company.company_address %}<Address>{{ company.company_address }}</Address>
    {% endif %}
    {% if company.npwp %}<NPWP>{{ company.npwp }}</NPWP>
    {% endif %}
  </Buyer>
  <DeliveryAddress>{{ po.delivery_address }}</DeliveryAddress>
  <LineItems>
    {% for item in po.line_items %}
    <LineItem number="{{ loop.index }}" productId="{{ item.product_id }}">
      <Description>{{ item.product_name }}</Description>
      <Quantity unit="{{ item.unit }}">{{ item.qty }}</Quantity>
      <UnitPrice>{{ item.price }}</UnitPrice>
      <LineTotal display="{{ item.total | currency }}">{{ item.total }}</LineTotal>
    </LineItem>
    {% endfor %}
  </LineItems>
  <TotalAmount display="{{ po.total_amount | currency }}">{{ po.total_amount }}</TotalAmount>
  <RelatedBudgetRequests>
    {% for budget_id in po.related_budget_ids %}
    <BudgetRequest>{{ budget_id }}</BudgetRequest>
    {% endfor %}
  </RelatedBudgetRequests>
</PurchaseOrder>
"""


def build_export_payload(
    po: PurchaseOrder,
    vendor: Optional[Vendor] = None,
    company: Optional[CompanyProfile] = None,
) -> dict:
    # "items" would shadow dict.items() in templates
    po_data = po.model_dump(mode="json")
    po_data["line_items"] = po_data.pop("items")
    return {
        "po": po_data,
        "vendor": vendor.model_dump(mode="json") if vendor else {},
        "company": company.model_dump(mode="json") if company else {},
    }


def _environment(template_file: Optional[Path], currency_symbol: str) -> Environment:
    loader = FileSystemLoader(str(template_file.parent)) if template_file else BaseLoader()
    env = Environment(loader=loader, autoescape=True, keep_trailing_newline=True)
    env.filters["currency"] = lambda value: format_currency(value, currency_symbol)
    return env


def render_po_xml(
    payload: dict,
    template_file: Optional[Path] = None,
    currency_symbol: str = "Rp",
) -> str:
    """
    Render *payload* (see build_export_payload) as an XML document.

    An operator template file replaces the built-in one when it exists; a
    configured path that is missing falls back to the default.
    """
    if template_file is not None and not template_file.exists():
        logger.warning("Export template %s not found, using the built-in template", template_file)
        template_file = None

    env = _environment(template_file, currency_symbol)
    if template_file is None:
        return env.from_string(DEFAULT_PO_XML_TEMPLATE).render(**payload)
    return env.get_template(template_file.name).render(**payload)
