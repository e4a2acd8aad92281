"""
Collection names shared by the services and the invalidation router.
"""

PRODUCTS = "products"
CATEGORIES = "categories"
BRANDS = "brands"
SUPPLIERS = "suppliers"
SPECIFICATIONS = "specifications"
SALES_NOTES = "sales_notes"
SERVICE_REQUESTS = "service_requests"

ALL_COLLECTIONS = (
    PRODUCTS,
    CATEGORIES,
    BRANDS,
    SUPPLIERS,
    SPECIFICATIONS,
    SALES_NOTES,
    SERVICE_REQUESTS,
)
