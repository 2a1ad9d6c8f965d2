"""
Service configuration
"""
