"""Supplier EPI API routers."""
