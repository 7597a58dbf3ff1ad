"""
Supplier EPI - Utilities Package
"""
