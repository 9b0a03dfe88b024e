"""Business logic services package.

Contains the pricing core of the storefront: currency conversion, tariff
estimation, cart bookkeeping and order totals, plus the thin clients for the
external shipping-rate provider and the session key-value store.
"""
