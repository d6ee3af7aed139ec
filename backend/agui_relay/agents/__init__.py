"""
Agent graphs shipped with the relay.
"""
