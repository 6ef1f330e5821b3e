"""Route modules for the Order Service.

- health: root, health check and admission control diagnostics
- orders: batch order submission
"""
