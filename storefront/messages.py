"""User-facing message templates and constants.

Contains the tariff notes shown next to an estimate, customs documentation
labels, and error messages returned by the HTTP API. Centralizes message
management for consistent wording across components.
"""

# Tariff notes
DUTY_FREE_NOTE = (
    "Your order is below the duty-free threshold. No import taxes will be charged."
)

DEFAULT_TARIFF_NOTE = (
    "Import duties and taxes may apply. The final amount will be determined by customs."
)

TARIFF_NOTES = {
    "US": "US imports under $800 are duty-free. Your order may be subject to state sales tax upon delivery.",
    "CN": "Imports to China are subject to 13% VAT. Clothing items typically have no additional duty.",
    "GB": "UK imports are subject to 20% VAT. Additional duty may apply for certain categories.",
    "DE": "German imports are subject to 19% VAT. Clothing may have additional 12% duty.",
    "FR": "French imports are subject to 20% VAT. Additional duty may apply.",
    "JP": "Japanese imports are subject to 10% consumption tax.",
    "AU": "Australian imports over AUD$1000 are subject to 10% GST.",
    "CA": "Canadian imports are subject to 5% GST plus provincial taxes.",
}

TARIFF_DISCLAIMER = (
    "Tariff estimates are for informational purposes only. "
    "Final amounts are determined by customs authorities."
)

# Customs documentation
DOC_COMMERCIAL_INVOICE = "Commercial invoice"
DOC_CUSTOMS_DECLARATION = "Customs declaration form"
DOC_IMPORT_DECLARATION = "Import declaration"
DOC_STANDARD = "Standard shipping documentation"

# Shipping descriptions
SHIPPING_SPEED_EXPRESS = "Express"
SHIPPING_SPEED_STANDARD = "Standard"
SHIPPING_SPEED_ECONOMY = "Economy"
SHIPPING_DESCRIPTION = "{carrier} {service} - {speed} ({days} days)"

# API errors
ERROR_TARIFF_REQUIRED_FIELDS = "Country and value are required"
ERROR_TARIFF_VALUE = "Value must be greater than 0"
ERROR_ADDRESS_REQUIRED = "Valid shipping address is required"
ERROR_SHIPPING_FAILED = "Failed to get shipping rates"
ERROR_SHIPPING_NOT_CONFIGURED = "Shipping-rate provider is not configured"
ERROR_INVALID_JSON = "Request body must be a JSON object"
ERROR_AMOUNT_REQUIRED = "Valid amount is required"
