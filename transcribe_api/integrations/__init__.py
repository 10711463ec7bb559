"""
Third-party service integrations
"""
