"""
Core system components for the connection, attempt state and navigation
"""
