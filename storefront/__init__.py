"""Cross-border storefront pricing package.

Backend core for a cross-border e-commerce storefront: multi-currency price
conversion, import tariff estimation, cart bookkeeping, and checkout totals
in the customer's display currency.

The application follows a modular architecture with separate concerns for:
- Currency conversion backed by a refreshable exchange-rate table
- Rule-table driven tariff and duty estimation
- Cart line items with key-value persistence
- Order totals assembly, shipping quotes and payment-intent parameters
"""
