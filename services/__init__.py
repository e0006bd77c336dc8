"""
Business logic services.

Each service handles one domain area. Import them from their modules;
models import services.product_aggregate, so this package stays light.
"""
