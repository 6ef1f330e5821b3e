"""
Apps package - FastAPI services for the order management platform.

- order_service: admission-controlled bulk order submission to the trade service
"""
