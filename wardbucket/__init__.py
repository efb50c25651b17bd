"""
Ward Data Bucket - geo hierarchy backend
"""
