"""
Domain services for the geo hierarchy
"""
