"""stockalert_server — FastAPI service for the StockAlert USSD SDK.

Exposes the USSD gateway callback, session diagnostics, reference data
and admin maintenance endpoints.
"""
