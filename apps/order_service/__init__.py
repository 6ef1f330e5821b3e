"""
Order Service.

Admission-controlled bulk submission of orders to the trade service.

Components:
- resource_probes / overload_detector / admission: load-based admission control
- batch_loader: batch validation and eligibility filtering
- bulk_submission: build, call, reconcile, persist and aggregate one batch
- trade_service_client: trade service bulk endpoint client
- database: order reads and the conditional submitted-status update
- app_factory / main: FastAPI application wiring
"""

__version__ = "0.1.0"
