"""
Cached data-access services for products, catalog reference data and
sales/service tickets.
"""
