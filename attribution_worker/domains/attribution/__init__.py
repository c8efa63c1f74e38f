"""
Attribution domain: identity matching, journey reconstruction and recovery
"""
